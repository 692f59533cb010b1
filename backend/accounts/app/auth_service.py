"""Login orchestration and the account lifecycle flows around it.

Predictable login outcomes (bad password, locked, unverified, ...) come back
as a typed :data:`LoginResult`; everything else raises an
:class:`~.errors.AuthError` subclass. Notifications are sent after state is
committed, bounded by a timeout, and their failure never undoes that state.
"""
from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from ..db.models import AccountStatus, TwoFactorMethod, User, UserRole
from .account_security import AccountSecurity
from .audit import AuditAction, AuditLogger
from .codes import CodeEngine, CodePurpose, IssuedCode
from .config import Settings, settings as default_settings
from .email import DeliveryResult, EmailDispatcher
from .email_domains import is_disposable_email
from .errors import (
    AccountDeactivated,
    AccountLocked,
    AuthError,
    DisposableEmail,
    EmailExists,
    EmailNotVerified,
    InvalidCredentials,
    InvalidMfaMethod,
    InvalidMfaVerification,
    InvalidPassword,
    NotAuthenticated,
    PasswordPolicyViolation,
    PasswordReused,
    PermissionDenied,
    PhoneNumberInUse,
    SmsSendFailed,
    UserNotFound,
)
from .logging import get_logger
from .mfa import MfaMethodChange, MfaService
from .passwords import PasswordHistoryService, PasswordPolicy, user_info_tokens, validate_password
from .repositories import UserRepository
from .security import TokenError, TokenIssuer, hash_password, verify_password
from .sessions import SessionRegistry
from .sms import SmsDispatcher
from .timeutils import utcnow

logger = get_logger("accounts.auth")

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, password reset instructions have been sent."
FORGOT_PASSWORD_PHONE_MESSAGE = "If an account with that phone number exists, a reset code has been sent."
RESEND_VERIFICATION_MESSAGE = "If the account exists and is not yet verified, a new verification message has been sent."

SELF_REGISTRATION_ROLES = frozenset({UserRole.CLIENT, UserRole.AGENT})


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Best-effort client metadata; recorded, never trusted."""

    ip_address: str | None = None
    user_agent: str | None = None


class LoginFailureReason(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_LOCKED = "account_locked"
    EMAIL_NOT_VERIFIED = "email_not_verified"


@dataclass(frozen=True, slots=True)
class LoginSuccess:
    access_token: str
    expires_at: datetime
    session_id: str
    user: User


@dataclass(frozen=True, slots=True)
class MfaChallenge:
    temp_token: str
    expires_at: datetime
    method: TwoFactorMethod
    user_id: str


@dataclass(frozen=True, slots=True)
class LoginFailure:
    reason: LoginFailureReason
    locked_until: datetime | None = None

    def to_error(self) -> AuthError:
        if self.reason is LoginFailureReason.ACCOUNT_LOCKED:
            return AccountLocked(self.locked_until)
        if self.reason is LoginFailureReason.ACCOUNT_DEACTIVATED:
            return AccountDeactivated()
        if self.reason is LoginFailureReason.EMAIL_NOT_VERIFIED:
            return EmailNotVerified()
        return InvalidCredentials()


LoginResult = Union[LoginSuccess, MfaChallenge, LoginFailure]


@dataclass(frozen=True, slots=True)
class RegistrationInput:
    email: str
    password: str
    full_name: str
    role: UserRole = UserRole.CLIENT
    phone_number: str | None = None


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    user: User
    verification_method: str
    message: str


class AuthService:
    """Coordinate the credential store, code engine, MFA and session registry."""

    def __init__(
        self,
        repository: UserRepository,
        *,
        email_dispatcher: EmailDispatcher,
        sms_dispatcher: SmsDispatcher,
        audit_logger: AuditLogger,
        session_registry: SessionRegistry,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or default_settings
        self._repository = repository
        self._email = email_dispatcher
        self._sms = sms_dispatcher
        self._audit = audit_logger
        self._registry = session_registry
        self._clock = clock
        self._codes = CodeEngine(self._config.auth, clock=clock)
        self._security = AccountSecurity(self._config.auth, clock=clock)
        self._tokens = TokenIssuer(self._config.auth)
        self._policy = PasswordPolicy(self._config.password, clock=clock)
        self._history = PasswordHistoryService(
            repository.session, limit=self._config.password.history_limit
        )
        self.mfa = MfaService(
            repository,
            config=self._config.auth,
            code_engine=self._codes,
            clock=clock,
        )

    @property
    def policy(self) -> PasswordPolicy:
        return self._policy

    @property
    def history(self) -> PasswordHistoryService:
        return self._history

    @property
    def tokens(self) -> TokenIssuer:
        return self._tokens

    # -- helpers -----------------------------------------------------------------

    async def _record(
        self,
        action: str,
        user: User | None,
        ctx: RequestContext | None,
        details: dict | None = None,
        *,
        actor: User | None = None,
    ) -> None:
        ctx = ctx or RequestContext()
        await self._audit.log(
            action,
            "User",
            user.id if user is not None else None,
            details,
            user_id=(actor or user).id if (actor or user) is not None else None,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    async def _deliver(
        self,
        channel: str,
        template: str,
        user: User,
        send: Callable[[], Awaitable[DeliveryResult]],
        ctx: RequestContext | None,
    ) -> DeliveryResult:
        timeout = self._config.notifications.send_timeout_seconds
        try:
            result = await asyncio.wait_for(send(), timeout=timeout)
        except asyncio.TimeoutError:
            result = DeliveryResult(success=False, message=f"timed out after {timeout}s")
        except Exception as exc:  # transport errors must not undo committed state
            logger.exception("notification_error", channel=channel, template=template, user_id=user.id)
            result = DeliveryResult(success=False, message=str(exc) or exc.__class__.__name__)

        if not result.success:
            logger.warning(
                "notification_failed",
                channel=channel,
                template=template,
                user_id=user.id,
                reason=result.message,
            )
            await self._record(
                AuditAction.NOTIFICATION_FAILED,
                user,
                ctx,
                {"channel": channel, "template": template, "reason": result.message},
            )
        return result

    def _start_session(self, user: User, ctx: RequestContext | None) -> LoginSuccess:
        ctx = ctx or RequestContext()
        active = self._registry.add_session(
            user, ip_address=ctx.ip_address, user_agent=ctx.user_agent
        )
        token, expires_at = self._tokens.issue_access_token(user, active.session_id)
        return LoginSuccess(
            access_token=token,
            expires_at=expires_at,
            session_id=active.session_id,
            user=user,
        )

    def _enforce_password_rules(self, user_like_email: str, full_name: str | None, password: str) -> None:
        valid, errors = validate_password(
            password,
            user_info_tokens(email=user_like_email, full_name=full_name),
            policy=self._config.password,
        )
        if not valid:
            raise PasswordPolicyViolation(errors)

    async def _check_new_password(self, user: User, password: str) -> None:
        self._enforce_password_rules(user.email, user.full_name, password)
        if await self._history.is_password_in_history(user, password):
            raise PasswordReused()

    async def _apply_new_password(self, user: User, password: str) -> None:
        new_hash = hash_password(password)
        user.password_hash = new_hash
        user.password_changed_at = self._clock()
        self._security.reset_failed_attempts(user)
        await self._history.add_password_to_history(user.id, new_hash)

    # -- login -------------------------------------------------------------------

    async def login(self, email: str, password: str, ctx: RequestContext | None = None) -> LoginResult:
        user = await self._repository.find_by_email(email)
        if user is None:
            await self._record(AuditAction.LOGIN_FAILED, None, ctx, {"reason": "unknown_account"})
            return LoginFailure(LoginFailureReason.INVALID_CREDENTIALS)

        blocked = self._security.check_login_preconditions(user)
        if isinstance(blocked, AccountDeactivated):
            await self._record(AuditAction.LOGIN_FAILED, user, ctx, {"reason": "deactivated"})
            return LoginFailure(LoginFailureReason.ACCOUNT_DEACTIVATED)
        if isinstance(blocked, AccountLocked):
            await self._record(AuditAction.LOGIN_FAILED, user, ctx, {"reason": "locked"})
            return LoginFailure(LoginFailureReason.ACCOUNT_LOCKED, locked_until=blocked.locked_until)

        if not verify_password(user.password_hash, password):
            outcome = self._security.register_failed_attempt(user)
            await self._repository.save(user)
            await self._record(
                AuditAction.LOGIN_FAILED,
                user,
                ctx,
                {"reason": "bad_password", "attempts": outcome.attempts},
            )
            if outcome.locked:
                logger.warning("account_locked", user_id=user.id, attempts=outcome.attempts)
                await self._record(
                    AuditAction.ACCOUNT_LOCKED,
                    user,
                    ctx,
                    {"lockedUntil": outcome.locked_until.isoformat() if outcome.locked_until else None},
                )
            return LoginFailure(LoginFailureReason.INVALID_CREDENTIALS)

        self._security.reset_failed_attempts(user)
        await self._repository.save(user)

        if not self._security.can_sign_in(user):
            await self._record(AuditAction.LOGIN_FAILED, user, ctx, {"reason": "not_verified"})
            return LoginFailure(LoginFailureReason.EMAIL_NOT_VERIFIED)

        user.last_login = self._clock()
        if ctx is not None and ctx.ip_address:
            user.last_login_ip = ctx.ip_address
        await self._repository.save(user)
        await self._record(AuditAction.USER_LOGIN, user, ctx, {"mfaRequired": bool(user.mfa_enabled)})

        if user.mfa_enabled:
            return await self._begin_mfa_challenge(user, ctx)

        success = self._start_session(user, ctx)
        logger.info("login_succeeded", user_id=user.id, session_id=success.session_id)
        return success

    async def _begin_mfa_challenge(self, user: User, ctx: RequestContext | None) -> MfaChallenge:
        method = user.two_factor_method or TwoFactorMethod.TOTP
        if method is TwoFactorMethod.EMAIL:
            issued = await self.mfa.issue_challenge_code(user)
            await self._deliver(
                "email",
                "mfa-code",
                user,
                lambda: self._email.send_mfa_code(
                    email=user.email, full_name=user.full_name, code=issued.value, expires_at=issued.expires_at
                ),
                ctx,
            )
        elif method is TwoFactorMethod.SMS:
            if user.phone_number and user.is_phone_verified:
                issued = await self.mfa.issue_challenge_code(user)
                phone_number = user.phone_number
                await self._deliver(
                    "sms",
                    "mfa-code",
                    user,
                    lambda: self._sms.send_mfa_code(phone_number, issued.value),
                    ctx,
                )
            else:
                # only backup codes can complete this challenge
                logger.warning("mfa_sms_phone_unverified", user_id=user.id)
        temp_token, expires_at = self._tokens.issue_mfa_pending_token(user)
        logger.info("mfa_challenge_issued", user_id=user.id, method=method.value)
        return MfaChallenge(temp_token=temp_token, expires_at=expires_at, method=method, user_id=user.id)

    async def verify_mfa_and_login(
        self,
        code: str,
        temp_token: str,
        ctx: RequestContext | None = None,
        *,
        for_time: datetime | None = None,
    ) -> LoginSuccess:
        """Finish a login that stopped at :class:`MfaChallenge`.

        Every failure, whatever its cause, surfaces as the same
        :class:`InvalidMfaVerification`.
        """

        try:
            claims = self._tokens.decode_mfa_pending_token(temp_token)
        except TokenError as exc:
            logger.info("mfa_temp_token_rejected", reason=str(exc))
            await self._record(AuditAction.MFA_FAILED, None, ctx, {"reason": "temp_token"})
            raise InvalidMfaVerification() from exc

        user = await self._repository.find_by_id(claims.user_id)
        if user is None or not user.is_active or not user.mfa_enabled:
            await self._record(AuditAction.MFA_FAILED, user, ctx, {"reason": "account_state"})
            raise InvalidMfaVerification()

        try:
            verified = await self.mfa.verify_mfa_token(user, code, for_time=for_time)
        except InvalidMfaMethod:
            verified = False
        used_backup_code = False
        if not verified:
            used_backup_code = await self.mfa.verify_backup_code(user, code)
            verified = used_backup_code
        if not verified:
            await self._record(AuditAction.MFA_FAILED, user, ctx, {"reason": "bad_code"})
            raise InvalidMfaVerification()

        success = self._start_session(user, ctx)
        await self._record(
            AuditAction.MFA_VERIFIED,
            user,
            ctx,
            {"backupCode": used_backup_code, "sessionId": success.session_id},
        )
        return success

    async def logout(self, user: User, session_id: str | None, ctx: RequestContext | None = None) -> bool:
        removed = self._registry.remove_session(session_id) if session_id else False
        await self._record(AuditAction.USER_LOGOUT, user, ctx, {"sessionId": session_id})
        return removed

    async def authenticate(self, token: str) -> tuple[User, str | None]:
        """Resolve a bearer token to its user and bump session activity.

        A signed token is not enough on its own: the account must still be
        ACTIVE and the session it names must still be live in the registry,
        so logout, suspension and password resets end access immediately.
        """

        try:
            claims = self._tokens.decode_access_token(token)
        except TokenError as exc:
            raise NotAuthenticated(str(exc)) from exc
        user = await self._repository.find_by_id(claims.user_id)
        if user is None:
            raise NotAuthenticated("User not found")
        if not user.is_active:
            raise AccountDeactivated()
        if user.account_status is not AccountStatus.ACTIVE:
            raise NotAuthenticated("Account is not active")
        if not claims.session_id or not self._registry.update_activity(claims.session_id):
            raise NotAuthenticated("Session expired")
        return user, claims.session_id

    def get_profile(self, user: User) -> dict[str, Any]:
        """Public view of ``user``; never includes hashes, secrets or codes."""

        return {
            "id": user.id,
            "email": user.email,
            "fullName": user.full_name,
            "role": user.role.value,
            "accountStatus": user.account_status.value,
            "isActive": bool(user.is_active),
            "isEmailVerified": bool(user.is_email_verified),
            "isPhoneVerified": bool(user.is_phone_verified),
            "phoneNumber": user.phone_number,
            "mfaEnabled": bool(user.mfa_enabled),
            "twoFactorMethod": user.two_factor_method.value if user.two_factor_method else None,
            "lastLogin": user.last_login,
            "passwordExpired": self._policy.is_password_expired(user.password_changed_at),
            "daysUntilPasswordExpiration": self._policy.days_until_expiration(user.password_changed_at),
            "createdAt": user.created_at,
        }

    # -- registration & email verification ---------------------------------------

    async def register(self, data: RegistrationInput, ctx: RequestContext | None = None) -> RegistrationResult:
        email = data.email.strip().lower()
        if await self._repository.find_by_email(email) is not None:
            raise EmailExists()
        if is_disposable_email(email):
            raise DisposableEmail()
        if data.role not in SELF_REGISTRATION_ROLES:
            raise PermissionDenied("Requested role cannot be self-assigned")
        self._enforce_password_rules(email, data.full_name, data.password)

        password_hash = hash_password(data.password)
        user = User(
            email=email,
            full_name=data.full_name.strip(),
            role=data.role,
            password_hash=password_hash,
            is_active=True,
            account_status=AccountStatus.PENDING,
            is_email_verified=False,
            is_phone_verified=False,
            failed_login_attempts=0,
            mfa_enabled=False,
            phone_number=data.phone_number,
            password_changed_at=self._clock(),
        )
        method = self._config.auth.email_verification_method
        issued = self._codes.issue(
            user,
            CodePurpose.EMAIL_VERIFICATION_CODE if method == "code" else CodePurpose.EMAIL_VERIFICATION_TOKEN,
        )
        await self._repository.add(user)
        await self._history.add_password_to_history(user.id, password_hash)
        await self._repository.save(user)

        await self._record(AuditAction.USER_REGISTERED, user, ctx, {"role": user.role.value})
        logger.info("user_registered", user_id=user.id, verification_method=method)
        await self._send_verification(user, issued, method, ctx)
        return RegistrationResult(
            user=user,
            verification_method=method,
            message="Registration successful. Please check your email to verify your account.",
        )

    async def _send_verification(
        self, user: User, issued: IssuedCode, method: str, ctx: RequestContext | None
    ) -> DeliveryResult:
        if method == "code":
            return await self._deliver(
                "email",
                "email-verification-code",
                user,
                lambda: self._email.send_email_verification_code(
                    email=user.email, full_name=user.full_name, code=issued.value, expires_at=issued.expires_at
                ),
                ctx,
            )
        return await self._deliver(
            "email",
            "email-verification",
            user,
            lambda: self._email.send_email_verification_link(
                email=user.email, full_name=user.full_name, token=issued.value, expires_at=issued.expires_at
            ),
            ctx,
        )

    async def _complete_email_verification(self, user: User, ctx: RequestContext | None, via: str) -> User:
        self._security.mark_email_verified(user)
        await self._repository.save(user)
        await self._record(AuditAction.EMAIL_VERIFIED, user, ctx, {"via": via})
        return user

    async def verify_email_token(self, token: str, ctx: RequestContext | None = None) -> User:
        user = await self._repository.find_by_email_verification_token(token.strip())
        user = self._codes.consume(user, CodePurpose.EMAIL_VERIFICATION_TOKEN, token)
        return await self._complete_email_verification(user, ctx, "link")

    async def verify_email_code(self, email: str, code: str, ctx: RequestContext | None = None) -> User:
        user = await self._repository.find_by_email(email)
        user = self._codes.consume(user, CodePurpose.EMAIL_VERIFICATION_CODE, code)
        return await self._complete_email_verification(user, ctx, "code")

    async def resend_verification(self, email: str, ctx: RequestContext | None = None) -> str:
        user = await self._repository.find_by_email(email)
        if user is None or user.is_email_verified or not user.is_active:
            return RESEND_VERIFICATION_MESSAGE
        method = self._config.auth.email_verification_method
        issued = self._codes.issue(
            user,
            CodePurpose.EMAIL_VERIFICATION_CODE if method == "code" else CodePurpose.EMAIL_VERIFICATION_TOKEN,
        )
        await self._repository.save(user)
        await self._send_verification(user, issued, method, ctx)
        return RESEND_VERIFICATION_MESSAGE

    # -- password reset ----------------------------------------------------------

    async def _start_reset(
        self,
        user: User | None,
        purpose: CodePurpose,
        ctx: RequestContext | None,
        *,
        channel: str,
    ) -> None:
        if user is None or not user.is_active:
            return
        issued = self._codes.issue(user, purpose)
        await self._repository.save(user)
        await self._record(AuditAction.PASSWORD_RESET_REQUESTED, user, ctx, {"channel": channel, "purpose": purpose.value})

        if purpose is CodePurpose.PASSWORD_RESET_TOKEN:
            send = lambda: self._email.send_password_reset_link(  # noqa: E731
                email=user.email, full_name=user.full_name, token=issued.value, expires_at=issued.expires_at
            )
            template = "password-reset"
        elif purpose is CodePurpose.PASSWORD_RESET_CODE:
            send = lambda: self._email.send_password_reset_code(  # noqa: E731
                email=user.email, full_name=user.full_name, code=issued.value, expires_at=issued.expires_at
            )
            template = "password-reset-code"
        else:
            phone_number = user.phone_number or ""
            send = lambda: self._sms.send_password_reset_code(phone_number, issued.value)  # noqa: E731
            template = "phone-password-reset"
        await self._deliver(channel, template, user, send, ctx)

    async def forgot_password(self, email: str, ctx: RequestContext | None = None) -> str:
        user = await self._repository.find_by_email(email)
        await self._start_reset(user, CodePurpose.PASSWORD_RESET_TOKEN, ctx, channel="email")
        return FORGOT_PASSWORD_MESSAGE

    async def forgot_password_code(self, email: str, ctx: RequestContext | None = None) -> str:
        user = await self._repository.find_by_email(email)
        await self._start_reset(user, CodePurpose.PASSWORD_RESET_CODE, ctx, channel="email")
        return FORGOT_PASSWORD_MESSAGE

    async def forgot_password_phone(self, phone_number: str, ctx: RequestContext | None = None) -> str:
        user = await self._repository.find_by_phone_number(phone_number)
        if user is not None and not user.is_phone_verified:
            user = None
        await self._start_reset(user, CodePurpose.PHONE_PASSWORD_RESET_CODE, ctx, channel="sms")
        return FORGOT_PASSWORD_PHONE_MESSAGE

    async def _finish_reset(
        self,
        user: User | None,
        purpose: CodePurpose,
        candidate: str,
        new_password: str,
        ctx: RequestContext | None,
    ) -> User:
        if user is None or not self._codes.matches(user, purpose, candidate):
            raise self._codes.failure(purpose)
        await self._check_new_password(user, new_password)
        self._codes.clear(user, purpose)
        await self._apply_new_password(user, new_password)
        await self._repository.save(user)
        self._registry.remove_user_sessions(user.id)
        await self._record(AuditAction.PASSWORD_RESET, user, ctx, {"purpose": purpose.value})
        logger.info("password_reset", user_id=user.id, purpose=purpose.value)
        return user

    async def reset_password(self, token: str, new_password: str, ctx: RequestContext | None = None) -> User:
        user = await self._repository.find_by_password_reset_token(token.strip())
        return await self._finish_reset(user, CodePurpose.PASSWORD_RESET_TOKEN, token, new_password, ctx)

    async def reset_password_with_code(
        self, email: str, code: str, new_password: str, ctx: RequestContext | None = None
    ) -> User:
        user = await self._repository.find_by_email(email)
        return await self._finish_reset(user, CodePurpose.PASSWORD_RESET_CODE, code, new_password, ctx)

    async def reset_password_with_phone(
        self, phone_number: str, code: str, new_password: str, ctx: RequestContext | None = None
    ) -> User:
        user = await self._repository.find_by_phone_number(phone_number)
        return await self._finish_reset(user, CodePurpose.PHONE_PASSWORD_RESET_CODE, code, new_password, ctx)

    async def change_password(
        self, user: User, current_password: str, new_password: str, ctx: RequestContext | None = None
    ) -> User:
        if not verify_password(user.password_hash, current_password):
            raise InvalidPassword("Current password is incorrect")
        await self._check_new_password(user, new_password)
        await self._apply_new_password(user, new_password)
        await self._repository.save(user)
        await self._record(AuditAction.PASSWORD_CHANGED, user, ctx)
        return user

    # -- phone verification ------------------------------------------------------

    async def send_phone_verification(
        self,
        user: User,
        phone_number: str,
        ctx: RequestContext | None = None,
        *,
        password: str | None = None,
    ) -> IssuedCode:
        """Attach ``phone_number`` to ``user`` (unverified) and text it a code.

        A number another account has already verified cannot be claimed.
        Moving the number of an account that receives its MFA codes by SMS
        requires the account password.
        """

        phone_number = phone_number.strip()
        if user.phone_number != phone_number:
            owner = await self._repository.find_by_phone_number(phone_number)
            if owner is not None and owner.id != user.id and owner.is_phone_verified:
                raise PhoneNumberInUse()
            if user.mfa_enabled and user.two_factor_method is TwoFactorMethod.SMS:
                if password is None or not verify_password(user.password_hash, password):
                    raise InvalidPassword("Password confirmation is required to change the MFA phone number")
            user.phone_number = phone_number
            user.is_phone_verified = False
        issued = self._codes.issue(user, CodePurpose.PHONE_VERIFICATION_CODE)
        await self._repository.save(user)
        result = await self._deliver(
            "sms",
            "phone-verification",
            user,
            lambda: self._sms.send_verification_code(phone_number, issued.value),
            ctx,
        )
        if not result.success:
            raise SmsSendFailed()
        return issued

    async def verify_phone(self, phone_number: str, code: str, ctx: RequestContext | None = None) -> User:
        purpose = CodePurpose.PHONE_VERIFICATION_CODE
        claimants = await self._repository.find_all_by_phone_number(phone_number)
        user = next((c for c in claimants if self._codes.matches(c, purpose, code)), None)
        user = self._codes.consume(user, purpose, code)
        if any(other.id != user.id and other.is_phone_verified for other in claimants):
            await self._repository.save(user)
            raise PhoneNumberInUse()
        user.is_phone_verified = True
        await self._repository.save(user)
        await self._record(AuditAction.PHONE_VERIFIED, user, ctx)
        return user

    # -- MFA management ----------------------------------------------------------

    async def enable_mfa(self, user: User, code: str, ctx: RequestContext | None = None) -> None:
        await self.mfa.enable_mfa(user, code)
        await self._record(AuditAction.MFA_ENABLED, user, ctx, {"method": TwoFactorMethod.TOTP.value})

    async def disable_mfa(self, user: User, password: str, ctx: RequestContext | None = None) -> None:
        await self.mfa.disable_mfa(user, password)
        await self._record(AuditAction.MFA_DISABLED, user, ctx)

    async def regenerate_backup_codes(
        self, user: User, password: str, ctx: RequestContext | None = None
    ) -> list[str]:
        codes = await self.mfa.generate_new_backup_codes(user, password)
        await self._record(AuditAction.BACKUP_CODES_REGENERATED, user, ctx, {"count": len(codes)})
        return codes

    async def set_two_factor_method(
        self,
        user: User,
        method: TwoFactorMethod,
        phone_number: str | None = None,
        ctx: RequestContext | None = None,
        *,
        password: str | None = None,
    ) -> MfaMethodChange:
        change = await self.mfa.set_two_factor_method(user, method, phone_number, password)
        await self._record(
            AuditAction.MFA_METHOD_CHANGED,
            user,
            ctx,
            {"method": method.value, "mfaEnabled": change.mfa_enabled},
        )
        return change

    # -- administration ----------------------------------------------------------

    async def change_account_status(
        self,
        actor: User,
        user_id: str,
        status: AccountStatus,
        ctx: RequestContext | None = None,
    ) -> User:
        user = await self._repository.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        previous = self._security.transition_status(user, status)
        await self._repository.save(user)
        if status is AccountStatus.SUSPENDED:
            self._registry.remove_user_sessions(user.id)
        await self._record(
            AuditAction.ACCOUNT_STATUS_CHANGED,
            user,
            ctx,
            {"from": previous.value, "to": status.value},
            actor=actor,
        )
        return user

    def active_users_by_role(self) -> dict[str, Any]:
        return self._registry.get_active_users_by_role()


__all__ = [
    "AuthService",
    "FORGOT_PASSWORD_MESSAGE",
    "FORGOT_PASSWORD_PHONE_MESSAGE",
    "LoginFailure",
    "LoginFailureReason",
    "LoginResult",
    "LoginSuccess",
    "MfaChallenge",
    "RESEND_VERIFICATION_MESSAGE",
    "RegistrationInput",
    "RegistrationResult",
    "RequestContext",
    "SELF_REGISTRATION_ROLES",
]
