"""
Account routes.

- POST /api/v1/auth/register, /login: public, return the user plus a token pair
- POST /api/v1/auth/logout: revoke the presented bearer token
- GET/PUT /api/v1/auth/me, PUT /api/v1/auth/password
- POST forgot-password, reset-password, verify-email, refresh-token: public
- POST resend-verification: bearer
"""
from fastapi import APIRouter, Depends

from presskit.core.auth import AuthContext, get_auth_context
from presskit.core.responses import created, success
from presskit.dependencies import Services, get_services
from presskit.models.user import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenRequest,
    UpdateMeRequest,
    UpdatePasswordRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register")
def register(body: RegisterRequest, services: Services = Depends(get_services)):
    user, tokens = services.users.register(body)
    return created({"user": user, **tokens}, "User registered successfully")


@router.post("/login")
def login(body: LoginRequest, services: Services = Depends(get_services)):
    user, tokens = services.users.login(body.email, body.password)
    return success({"user": user, **tokens}, "Login successful")


@router.post("/logout")
def logout(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    services.users.logout(auth.token)
    return success(message="Logged out successfully")


@router.get("/me")
def me(auth: AuthContext = Depends(get_auth_context)):
    return success(auth.user)


@router.put("/me")
def update_me(body: UpdateMeRequest, auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    return success(services.users.update_me(auth.user, body), "Profile updated successfully")


@router.put("/password")
def update_password(
    body: UpdatePasswordRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    tokens = services.users.update_password(auth.user, body.current_password, body.new_password)
    return success(tokens, "Password updated successfully")


@router.post("/forgot-password")
def forgot_password(body: ForgotPasswordRequest, services: Services = Depends(get_services)):
    services.users.forgot_password(body.email)
    return success(message="Password reset email sent")


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest, services: Services = Depends(get_services)):
    tokens = services.users.reset_password(body.token, body.password)
    return success(tokens, "Password reset successful")


@router.post("/verify-email")
def verify_email(body: TokenRequest, services: Services = Depends(get_services)):
    return success(services.users.verify_email(body.token), "Email verified successfully")


@router.post("/refresh-token")
def refresh_token(body: RefreshTokenRequest, services: Services = Depends(get_services)):
    return success(services.users.refresh(body.refresh_token))


@router.post("/resend-verification")
def resend_verification(auth: AuthContext = Depends(get_auth_context), services: Services = Depends(get_services)):
    services.users.resend_verification(auth.user)
    return success(message="Verification email sent")
