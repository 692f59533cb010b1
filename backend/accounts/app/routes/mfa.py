"""Second factor management for the signed-in user."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Security

from ...db.models import User
from ..auth_service import AuthService, RequestContext
from ..dependencies import get_auth_service, get_current_user, get_request_context
from ..errors import MfaNotConfigured
from ..mfa import TotpSetup
from ..schemas import (
    BackupCodesResponse,
    MfaCodeRequest,
    MfaMethodRequest,
    MfaMethodResponse,
    MfaSetupRequest,
    MfaSetupResponse,
    OperationStatus,
    PasswordConfirmRequest,
    QrCodeResponse,
)

router = APIRouter(prefix="/auth/mfa", tags=["mfa"])


def _setup_response(setup: TotpSetup) -> MfaSetupResponse:
    return MfaSetupResponse(
        secret=setup.secret,
        otpauth_url=setup.otpauth_url,
        qr_code=setup.qr_code,
        backup_codes=setup.backup_codes,
    )


@router.post("/setup", response_model=MfaSetupResponse)
async def setup_mfa(
    payload: MfaSetupRequest | None = None,
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MfaSetupResponse:
    password = payload.password if payload is not None else None
    return _setup_response(await service.mfa.setup_totp(current_user, password))


@router.get("/qr-code", response_model=QrCodeResponse)
async def get_qr_code(
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> QrCodeResponse:
    if not current_user.mfa_secret:
        raise MfaNotConfigured()
    uri = service.mfa.provisioning_uri(current_user, current_user.mfa_secret)
    return QrCodeResponse(qr_code=service.mfa.generate_qr_code(uri))


@router.post("/enable", response_model=OperationStatus)
async def enable_mfa(
    payload: MfaCodeRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.enable_mfa(current_user, payload.code, ctx)
    return OperationStatus(detail="Two-factor authentication enabled")


@router.post("/disable", response_model=OperationStatus)
async def disable_mfa(
    payload: PasswordConfirmRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.disable_mfa(current_user, payload.password, ctx)
    return OperationStatus(detail="Two-factor authentication disabled")


@router.post("/backup-codes", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    payload: PasswordConfirmRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> BackupCodesResponse:
    codes = await service.regenerate_backup_codes(current_user, payload.password, ctx)
    return BackupCodesResponse(detail="Backup codes regenerated", backup_codes=codes)


@router.put("/method", response_model=MfaMethodResponse, response_model_exclude_none=True)
async def set_method(
    payload: MfaMethodRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MfaMethodResponse:
    change = await service.set_two_factor_method(
        current_user, payload.method, payload.phone_number, ctx, password=payload.password
    )
    return MfaMethodResponse(
        method=change.method,
        mfa_enabled=change.mfa_enabled,
        backup_codes=change.backup_codes,
        setup=_setup_response(change.totp) if change.totp else None,
    )


__all__ = ["router"]
