"""Authentication API endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Security, status

from ...db.models import User
from ..auth_service import (
    AuthService,
    LoginFailure,
    MfaChallenge,
    RegistrationInput,
    RequestContext,
)
from ..dependencies import (
    Principal,
    get_auth_service,
    get_current_principal,
    get_current_user,
    get_request_context,
)
from ..logging import get_logger
from ..passwords import calculate_strength, user_info_tokens, validate_password
from ..schemas import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MfaVerifyRequest,
    OperationStatus,
    PasswordPolicyResponse,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    PhoneCodeRequest,
    PhoneRequest,
    PhoneVerificationRequest,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    ResetPasswordWithCodeRequest,
    ResetPasswordWithPhoneRequest,
    UserResource,
    VerifyEmailCodeRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])

logger = get_logger("accounts.routes.auth")


def serialize_user(user: User) -> UserResource:
    return UserResource.model_validate(user)


@router.post("/login", response_model=LoginResponse, response_model_exclude_none=True)
async def login(
    payload: LoginRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    result = await service.login(str(payload.email), payload.password, ctx)
    if isinstance(result, LoginFailure):
        raise result.to_error()
    if isinstance(result, MfaChallenge):
        return LoginResponse(
            requires_mfa=True,
            temp_token=result.temp_token,
            expires_at=result.expires_at,
            mfa_method=result.method,
        )
    return LoginResponse(
        requires_mfa=False,
        access_token=result.access_token,
        token_type="bearer",
        expires_at=result.expires_at,
        session_id=result.session_id,
        user=serialize_user(result.user),
    )


@router.post("/mfa/verify", response_model=LoginResponse, response_model_exclude_none=True)
async def verify_mfa(
    payload: MfaVerifyRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    result = await service.verify_mfa_and_login(payload.code, payload.temp_token, ctx)
    return LoginResponse(
        requires_mfa=False,
        access_token=result.access_token,
        token_type="bearer",
        expires_at=result.expires_at,
        session_id=result.session_id,
        user=serialize_user(result.user),
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    result = await service.register(
        RegistrationInput(
            email=str(payload.email),
            password=payload.password,
            full_name=payload.full_name,
            role=payload.role,
            phone_number=payload.phone_number,
        ),
        ctx,
    )
    return RegisterResponse(
        detail=result.message,
        verification_method=result.verification_method,
        user=serialize_user(result.user),
    )


@router.get("/verify-email", response_model=OperationStatus)
async def verify_email(
    token: str,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.verify_email_token(token, ctx)
    return OperationStatus(detail="Email verified")


@router.post("/verify-email-code", response_model=OperationStatus)
async def verify_email_code(
    payload: VerifyEmailCodeRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.verify_email_code(str(payload.email), payload.code, ctx)
    return OperationStatus(detail="Email verified")


@router.post("/resend-verification", response_model=OperationStatus)
async def resend_verification(
    payload: EmailRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    detail = await service.resend_verification(str(payload.email), ctx)
    return OperationStatus(detail=detail)


@router.post("/forgot-password", response_model=OperationStatus)
async def forgot_password(
    payload: EmailRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    return OperationStatus(detail=await service.forgot_password(str(payload.email), ctx))


@router.post("/reset-password", response_model=OperationStatus)
async def reset_password(
    payload: ResetPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.reset_password(payload.token, payload.new_password, ctx)
    return OperationStatus(detail="Password updated")


@router.post("/forgot-password-code", response_model=OperationStatus)
async def forgot_password_code(
    payload: EmailRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    return OperationStatus(detail=await service.forgot_password_code(str(payload.email), ctx))


@router.post("/reset-password-code", response_model=OperationStatus)
async def reset_password_with_code(
    payload: ResetPasswordWithCodeRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.reset_password_with_code(str(payload.email), payload.code, payload.new_password, ctx)
    return OperationStatus(detail="Password updated")


@router.post("/forgot-password-phone", response_model=OperationStatus)
async def forgot_password_phone(
    payload: PhoneRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    return OperationStatus(detail=await service.forgot_password_phone(payload.phone_number, ctx))


@router.post("/reset-password-phone", response_model=OperationStatus)
async def reset_password_with_phone(
    payload: ResetPasswordWithPhoneRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.reset_password_with_phone(payload.phone_number, payload.code, payload.new_password, ctx)
    return OperationStatus(detail="Password updated")


@router.post("/phone/send-verification", response_model=OperationStatus)
async def send_phone_verification(
    payload: PhoneVerificationRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.send_phone_verification(current_user, payload.phone_number, ctx, password=payload.password)
    return OperationStatus(detail="Verification code sent")


@router.post("/phone/verify", response_model=OperationStatus)
async def verify_phone(
    payload: PhoneCodeRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.verify_phone(payload.phone_number, payload.code, ctx)
    return OperationStatus(detail="Phone number verified")


@router.post("/change-password", response_model=OperationStatus)
async def change_password(
    payload: ChangePasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    await service.change_password(current_user, payload.current_password, payload.new_password, ctx)
    return OperationStatus(detail="Password changed")


@router.post("/logout", response_model=OperationStatus)
async def logout(
    ctx: RequestContext = Depends(get_request_context),
    principal: Principal = Security(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> OperationStatus:
    removed = await service.logout(principal.user, principal.session_id, ctx)
    logger.info("logout", user_id=principal.user.id, session_removed=removed)
    return OperationStatus(detail="Logged out")


@router.get("/me", response_model=ProfileResponse)
async def get_me(
    current_user: User = Security(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    return ProfileResponse.model_validate(service.get_profile(current_user))


@router.post("/password-strength", response_model=PasswordStrengthResponse)
async def password_strength(
    payload: PasswordStrengthRequest,
    service: AuthService = Depends(get_auth_service),
) -> PasswordStrengthResponse:
    tokens = user_info_tokens(
        email=str(payload.email) if payload.email else None,
        full_name=payload.full_name,
    )
    strength = calculate_strength(payload.password, tokens)
    is_valid, errors = validate_password(payload.password, tokens, policy=service.policy.config)
    return PasswordStrengthResponse(
        score=strength.score,
        level=strength.level,
        feedback=strength.feedback,
        requirements=strength.requirements.as_dict() if strength.requirements else {},
        is_valid=is_valid,
        errors=errors,
    )


@router.get("/password-policy", response_model=PasswordPolicyResponse)
async def password_policy(service: AuthService = Depends(get_auth_service)) -> PasswordPolicyResponse:
    return PasswordPolicyResponse(
        requirements=service.policy.requirements(),
        description=service.policy.description(),
    )


__all__ = ["router", "serialize_user"]
