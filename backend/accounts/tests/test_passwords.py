"""Tests for password strength scoring, policy and reuse history."""
from __future__ import annotations

from datetime import timedelta

import pytest

from backend.accounts.app.config import PasswordSettings
from backend.accounts.app.passwords import (
    PasswordHistoryService,
    PasswordPolicy,
    calculate_strength,
    strength_level,
    user_info_tokens,
    validate_password,
)
from backend.accounts.app.security import hash_password

from .utils import OTHER_STRONG_PASSWORD, STRONG_PASSWORD, create_user


def test_long_mixed_password_scores_full_marks() -> None:
    result = calculate_strength(STRONG_PASSWORD)

    assert result.score == 100
    assert result.level == "Very Strong"
    assert all(result.requirements.as_dict().values())
    assert "Great! This is a strong password" in result.feedback


def test_common_password_is_rejected() -> None:
    is_valid, errors = validate_password("password123")

    assert is_valid is False
    assert "Password cannot contain common passwords or dictionary words" in errors
    assert "Password must be at least 12 characters long" in errors


def test_sequences_and_repeats_are_flagged() -> None:
    result = calculate_strength("Zz9!abcXXXXqq")

    assert result.requirements.not_sequential is False
    assert result.requirements.not_repeated is False
    assert "Avoid sequential characters (123, abc)" in result.feedback
    assert "Avoid repeated characters (aaaa, 1111)" in result.feedback


def test_personal_information_is_rejected() -> None:
    tokens = user_info_tokens(email="morgan.ellis@acme-corp.io", full_name="Morgan Ellis")
    is_valid, errors = validate_password("Morgan#Vault9Qx!", tokens)

    assert tokens == ["Morgan", "Ellis", "morgan.ellis"]
    assert is_valid is False
    assert "Password cannot contain your personal information" in errors


def test_user_info_tokens_skip_short_parts() -> None:
    assert user_info_tokens(email="al@acme-corp.io", full_name="Al Li") == []


@pytest.mark.parametrize(
    ("score", "level"),
    [(0, "Very Weak"), (19, "Very Weak"), (20, "Weak"), (40, "Fair"), (60, "Good"), (75, "Strong"), (90, "Very Strong")],
)
def test_strength_levels(score: int, level: str) -> None:
    assert strength_level(score) == level


def test_validate_password_honours_minimum_score() -> None:
    is_valid, errors = validate_password(STRONG_PASSWORD, min_score=100)
    assert is_valid is True
    assert errors == []


def test_disabled_character_class_is_not_enforced() -> None:
    relaxed = PasswordSettings(min_length=8, require_special_chars=False)

    assert validate_password("Gl4cierMountQ9", policy=relaxed) == (True, [])
    assert validate_password("Gl4c!erMt9", policy=relaxed) == (True, [])
    assert validate_password("Gl4cierMountQ9") == (
        False,
        ["Password must contain at least one special character"],
    )


def test_configured_length_bounds_are_enforced() -> None:
    policy = PasswordSettings(min_length=16, max_length=18)

    _, too_short = validate_password("Gl4cier#Mount@", policy=policy)
    _, too_long = validate_password("Gl4cier#Mount@in97Q", policy=policy)

    assert "Password must be at least 16 characters long" in too_short
    assert "Password must be at most 18 characters long" in too_long


def test_policy_expiry(clock) -> None:
    policy = PasswordPolicy(PasswordSettings(expiration_days=90), clock=clock)
    changed_at = clock.now

    assert policy.is_password_expired(changed_at) is False
    assert policy.days_until_expiration(changed_at) == 90

    clock.advance(days=91)
    assert policy.is_password_expired(changed_at) is True
    assert policy.days_until_expiration(changed_at) == 0


def test_policy_without_expiry(clock) -> None:
    policy = PasswordPolicy(PasswordSettings(expiration_days=0), clock=clock)

    assert policy.is_password_expired(clock.now - timedelta(days=400)) is False
    assert policy.days_until_expiration(clock.now) is None
    assert policy.is_password_expired(None) is False


def test_policy_describes_requirements() -> None:
    policy = PasswordPolicy(PasswordSettings())
    requirements = policy.requirements()

    assert requirements["minLength"] == 12
    assert requirements["historyLimit"] == 5
    assert policy.description()[0] == "At least 12 characters long"


@pytest.mark.asyncio
async def test_history_keeps_only_recent_hashes(db_session) -> None:
    user = await create_user(db_session)
    history = PasswordHistoryService(db_session, limit=5)

    for index in range(7):
        await history.add_password_to_history(user.id, hash_password(f"Passphrase#{index}Qz"))
    await db_session.commit()

    assert await history.get_password_history_count(user.id) == 5
    assert await history.is_password_in_history(user, "Passphrase#6Qz") is True
    assert await history.is_password_in_history(user, "Passphrase#2Qz") is True
    assert await history.is_password_in_history(user, "Passphrase#1Qz") is False


@pytest.mark.asyncio
async def test_history_includes_current_password(db_session) -> None:
    user = await create_user(db_session, password=STRONG_PASSWORD)
    history = PasswordHistoryService(db_session, limit=5)

    assert await history.is_password_in_history(user, STRONG_PASSWORD) is True
    assert await history.is_password_in_history(user, OTHER_STRONG_PASSWORD) is False


@pytest.mark.asyncio
async def test_clear_history(db_session) -> None:
    user = await create_user(db_session)
    history = PasswordHistoryService(db_session, limit=3)
    await history.add_password_to_history(user.id, hash_password(OTHER_STRONG_PASSWORD))
    await db_session.commit()

    await history.clear_password_history(user.id)
    await db_session.commit()

    assert await history.get_password_history_count(user.id) == 0
