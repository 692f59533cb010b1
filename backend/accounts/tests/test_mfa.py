"""Tests for TOTP enrolment, one-shot codes and backup codes."""
from __future__ import annotations

from datetime import timedelta

import pyotp
import pytest

from backend.accounts.app.codes import CodeEngine
from backend.accounts.app.config import AuthSettings
from backend.accounts.app.errors import (
    InvalidMfaCode,
    InvalidMfaMethod,
    InvalidPassword,
    MfaNotConfigured,
    MfaNotEnabled,
    PhoneNotVerified,
    QrGenerationFailed,
)
from backend.accounts.app.mfa import MfaService, generate_backup_codes, generate_qr_code
from backend.accounts.app.repositories import UserRepository
from backend.accounts.db.models import TwoFactorMethod

from .utils import STRONG_PASSWORD, create_user


@pytest.fixture
def mfa_service(db_session, clock) -> MfaService:
    config = AuthSettings()
    return MfaService(
        UserRepository(db_session),
        config=config,
        code_engine=CodeEngine(config, clock=clock),
        clock=clock,
    )


def test_backup_codes_shape() -> None:
    codes = generate_backup_codes(10, 8)

    assert len(codes) == 10
    assert len(set(codes)) == 10
    assert all(len(code) == 8 and code.isalnum() and code.isupper() for code in codes)


def test_qr_code_is_png_data_url() -> None:
    qr = generate_qr_code("otpauth://totp/Business%20Manager:jo@acme-corp.io?secret=JBSWY3DPEHPK3PXP")

    assert qr.startswith("data:image/png;base64,")


def test_qr_code_failure_is_typed() -> None:
    with pytest.raises(QrGenerationFailed):
        generate_qr_code("x" * 5000)


@pytest.mark.asyncio
async def test_setup_totp_leaves_mfa_disabled(db_session, mfa_service) -> None:
    user = await create_user(db_session, email="jo.kim@acme-corp.io")

    setup = await mfa_service.setup_totp(user)

    assert user.mfa_enabled is False
    assert user.mfa_secret == setup.secret
    assert user.two_factor_method is TwoFactorMethod.TOTP
    assert len(setup.backup_codes) == 10
    assert setup.backup_codes[0] not in user.mfa_backup_codes
    assert "issuer=Business%20Manager" in setup.otpauth_url
    assert "jo.kim%40acme-corp.io" in setup.otpauth_url
    assert setup.qr_code.startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_totp_window_accepts_two_steps_either_side(db_session, mfa_service, clock) -> None:
    user = await create_user(db_session)
    setup = await mfa_service.setup_totp(user)
    totp = pyotp.TOTP(setup.secret)
    now = clock.now

    for offset in (-60, 0, 60):
        code = totp.at(now + timedelta(seconds=offset))
        assert mfa_service.verify_totp(setup.secret, code, for_time=now) is True

    for offset in (-90, 90):
        code = totp.at(now + timedelta(seconds=offset))
        if code in {totp.at(now + timedelta(seconds=step)) for step in (-60, -30, 0, 30, 60)}:
            continue
        assert mfa_service.verify_totp(setup.secret, code, for_time=now) is False


@pytest.mark.asyncio
async def test_enable_requires_setup_and_valid_code(db_session, mfa_service, clock) -> None:
    user = await create_user(db_session)

    with pytest.raises(MfaNotConfigured):
        await mfa_service.enable_mfa(user, "123456")

    setup = await mfa_service.setup_totp(user)
    valid = pyotp.TOTP(setup.secret).at(clock.now)
    wrong = "000000" if valid != "000000" else "111111"
    with pytest.raises(InvalidMfaCode):
        await mfa_service.enable_mfa(user, wrong, for_time=clock.now)

    await mfa_service.enable_mfa(user, valid, for_time=clock.now)
    assert user.mfa_enabled is True


@pytest.mark.asyncio
async def test_backup_code_is_single_use(db_session, mfa_service) -> None:
    user = await create_user(db_session)
    setup = await mfa_service.setup_totp(user)
    code = setup.backup_codes[3]

    assert await mfa_service.verify_backup_code(user, code.lower()) is True
    assert len(user.mfa_backup_codes) == 9
    assert await mfa_service.verify_backup_code(user, code) is False


@pytest.mark.asyncio
async def test_disable_requires_password(db_session, mfa_service) -> None:
    user = await create_user(db_session, totp_secret=pyotp.random_base32())

    with pytest.raises(InvalidPassword):
        await mfa_service.disable_mfa(user, "Wrong#Password99")
    assert user.mfa_enabled is True

    await mfa_service.disable_mfa(user, STRONG_PASSWORD)
    assert user.mfa_enabled is False
    assert user.mfa_secret is None
    assert user.mfa_backup_codes is None
    assert user.two_factor_method is None


@pytest.mark.asyncio
async def test_regenerate_backup_codes(db_session, mfa_service) -> None:
    user = await create_user(db_session)

    with pytest.raises(MfaNotEnabled):
        await mfa_service.generate_new_backup_codes(user, STRONG_PASSWORD)

    setup = await mfa_service.setup_totp(user)
    user.mfa_enabled = True
    with pytest.raises(InvalidPassword):
        await mfa_service.generate_new_backup_codes(user, "Wrong#Password99")

    fresh = await mfa_service.generate_new_backup_codes(user, STRONG_PASSWORD)
    assert len(fresh) == 10
    assert await mfa_service.verify_backup_code(user, setup.backup_codes[0]) is False
    assert await mfa_service.verify_backup_code(user, fresh[0]) is True


@pytest.mark.asyncio
async def test_email_method_uses_one_shot_codes(db_session, mfa_service) -> None:
    user = await create_user(db_session)

    change = await mfa_service.set_two_factor_method(user, TwoFactorMethod.EMAIL)
    assert change.mfa_enabled is True
    assert len(change.backup_codes) == 10

    issued = await mfa_service.issue_challenge_code(user)
    assert await mfa_service.verify_mfa_token(user, "999999" if issued.value != "999999" else "000000") is False
    assert await mfa_service.verify_mfa_token(user, issued.value) is True
    assert await mfa_service.verify_mfa_token(user, issued.value) is False


@pytest.mark.asyncio
async def test_sms_method_requires_verified_phone(db_session, mfa_service) -> None:
    user = await create_user(db_session, phone_number="+15551230000")

    with pytest.raises(PhoneNotVerified):
        await mfa_service.set_two_factor_method(user, TwoFactorMethod.SMS)

    user.is_phone_verified = True
    change = await mfa_service.set_two_factor_method(user, TwoFactorMethod.SMS)
    assert change.method is TwoFactorMethod.SMS
    assert user.two_factor_method is TwoFactorMethod.SMS


@pytest.mark.asyncio
async def test_totp_method_restarts_enrolment(db_session, mfa_service) -> None:
    user = await create_user(db_session)

    change = await mfa_service.set_two_factor_method(user, TwoFactorMethod.TOTP)

    assert change.mfa_enabled is False
    assert change.totp is not None
    assert user.mfa_secret == change.totp.secret


@pytest.mark.asyncio
async def test_unknown_method_is_rejected(db_session, mfa_service) -> None:
    user = await create_user(db_session)
    user.mfa_enabled = True
    user.two_factor_method = None
    user.mfa_secret = None

    with pytest.raises(InvalidMfaMethod):
        await mfa_service.verify_mfa_token(user, "123456")
