"""
Authentication and account self-service routes.

- Sync SQLAlchemy session via Depends(get_db)
- Services raise portal.errors; main.py renders them as {"error": ...}
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.errors import PortalError
from portal.schemas.auth import (
    UserCreate, UserLogin, UserResponse, LoginResponse, VerifyRequest, VerifyResponse,
    ProfileUpdate, ChangePasswordRequest, PasswordResetRequest, ResetPasswordRequest,
    MessageResponse,
)
from portal.services.auth_service import AuthService
from portal.services.captcha_service import RecaptchaVerifier, get_captcha_verifier
from portal.services.notification_service import NotificationService, get_notifier
from portal.middleware.auth_middleware import get_current_user, AuthContext
from portal.middleware.audit_log import audit_log
from portal.middleware.rate_limiter import rate_limit_check, client_ip
from portal.utils.security import ACCESS_TOKEN_EXPIRE_MINUTES

router = APIRouter(prefix="/auth", tags=["Authentication"])

RESET_SENT_MESSAGE = "If the email exists, a reset link has been sent."


def get_auth_service(
    db: Session = Depends(get_db),
    captcha: RecaptchaVerifier = Depends(get_captcha_verifier),
    notifier: NotificationService = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, captcha=captcha, notifier=notifier)


def _login_response(user, token: str) -> LoginResponse:
    return LoginResponse(
        token=token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    data: UserCreate,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Self-registration. The account starts pending and no token is issued;
    the member logs in separately and stays behind the approval gate.
    """
    ip = client_ip(request)
    rate_limit_check("register", request)

    user = auth_service.register(data, remote_ip=ip)

    audit_log(
        action="user.register",
        actor_id=user.id,
        actor_type="user",
        resource_type="user",
        resource_id=user.id,
        request=request,
    )
    return {"message": "User created successfully", "user": UserResponse.model_validate(user)}


@router.post("/login", response_model=LoginResponse)
def login(
    data: UserLogin,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    ip = client_ip(request)
    rate_limit_check("login", request)

    try:
        user, token = auth_service.login(data.email, data.password, data.recaptcha_token, remote_ip=ip)
    except PortalError as e:
        audit_log(
            action="auth.login",
            actor_id=data.email,
            actor_type="anonymous",
            resource_type="auth",
            decision="denied",
            reason=e.message,
            request=request,
        )
        raise

    audit_log(
        action="auth.login",
        actor_id=user.id,
        actor_type="user",
        resource_type="auth",
        resource_id=user.id,
        request=request,
    )
    return _login_response(user, token)


@router.post("/admin-login", response_model=LoginResponse)
def admin_login(
    data: UserLogin,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Staff login: reCAPTCHA is mandatory and members are refused."""
    ip = client_ip(request)
    rate_limit_check("login", request)

    try:
        user, token = auth_service.admin_login(data.email, data.password, data.recaptcha_token, remote_ip=ip)
    except PortalError as e:
        audit_log(
            action="auth.admin_login",
            actor_id=data.email,
            actor_type="anonymous",
            resource_type="auth",
            decision="denied",
            reason=e.message,
            request=request,
        )
        raise

    audit_log(
        action="auth.admin_login",
        actor_id=user.id,
        actor_type="user",
        resource_type="auth",
        resource_id=user.id,
        request=request,
    )
    return _login_response(user, token)


@router.post("/verify", response_model=VerifyResponse)
def verify(data: VerifyRequest, auth_service: AuthService = Depends(get_auth_service)):
    result = auth_service.verify(data.token)
    if not result["valid"]:
        return JSONResponse(status_code=401, content=VerifyResponse(**result).model_dump())
    return result


@router.get("/me", response_model=UserResponse)
def me(auth: AuthContext = Depends(get_current_user)):
    return auth.user


@router.post("/update-profile")
def update_profile(
    data: ProfileUpdate,
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = auth_service.update_profile(auth.user, data)

    audit_log(
        action="user.update_profile",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=auth.identity_id,
        details={"fields": sorted(data.model_dump(exclude_none=True))},
        request=request,
    )
    return {"user": UserResponse.model_validate(user)}


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    request: Request,
    auth: AuthContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.change_password(auth.user, data.new_password, data.current_password)

    audit_log(
        action="user.change_password",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=auth.identity_id,
        request=request,
    )
    return {"message": "Password changed successfully"}


@router.post("/send-password-reset", response_model=MessageResponse)
def send_password_reset(
    data: PasswordResetRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Same answer whether or not the email is registered."""
    rate_limit_check("password-reset", request)

    token = auth_service.send_password_reset(data.email)

    audit_log(
        action="auth.password_reset_requested",
        actor_id=data.email,
        actor_type="anonymous",
        resource_type="auth",
        details={"issued": token is not None},
        request=request,
    )
    return {"message": RESET_SENT_MESSAGE}


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    rate_limit_check("password-reset", request)

    auth_service.reset_password(data.token, data.password)

    audit_log(
        action="auth.password_reset",
        actor_id=None,
        actor_type="anonymous",
        resource_type="auth",
        request=request,
    )
    return {"message": "Password reset successful"}
