"""HTTP routes for authentication."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from auth.config import AuthConfig
from auth.cookies import delete_session_cookie, set_oauth_cookies, set_session_cookie
from auth.exceptions import AuthError
from auth.oauth import append_query_param, safe_redirect_url
from auth.rate_limiter import (
    EMAIL_SEND_LIMIT,
    LOGIN_LIMIT,
    REGISTER_LIMIT,
    VERIFICATION_LIMIT,
    RateLimiter,
)
from auth.request_info import get_client_ip
from auth.security_middleware import current_session, current_user, optional_session, optional_user
from auth.service import AuthService
from auth.types import (
    AuthenticatedUser,
    EmailPasswordRequest,
    EmailRequest,
    ForgotPasswordVerifyRequest,
    OTPVerifyRequest,
    RegisterRequest,
    RevokeSessionRequest,
    Session,
    SessionResponse,
    User,
    UserMetadata,
    UserResponse,
)


def _client(request: Request) -> dict:
    return {
        "ip_address": get_client_ip(request),
        "user_agent": request.headers.get("user-agent"),
    }


def create_auth_router(
    auth_service: AuthService,
    rate_limiter: RateLimiter,
    config: AuthConfig,
) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    def logged_in(result: AuthenticatedUser) -> JSONResponse:
        response = JSONResponse({"user": UserResponse.from_user(result.user).model_dump(mode="json")})
        set_session_cookie(response, result.session, config)
        return response

    def redirect(url: str) -> RedirectResponse:
        return RedirectResponse(url, status_code=302)

    def failed_redirect(target: str | None, message: str) -> RedirectResponse:
        url = safe_redirect_url(config.app_base_url, target)
        return redirect(append_query_param(url, "error", message))

    @router.get("/")
    def get_current(
        user: User | None = Depends(optional_user),
        session: Session | None = Depends(optional_session),
    ):
        """Current user and session, or nulls when logged out."""
        return {
            "user": UserResponse.from_user(user).model_dump(mode="json") if user else None,
            "session": SessionResponse.from_session(session).model_dump(mode="json") if session else None,
        }

    @router.get("/profile")
    def get_profile(
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        details = auth_service.get_user_details(user.id, current_session_id=session.id)
        return {"user": details.model_dump(mode="json")}

    @router.patch("/profile/metadata")
    def update_profile_metadata(body: UserMetadata, user: User = Depends(current_user)):
        updated = auth_service.update_user_metadata(user.id, body)
        return {"user": UserResponse.from_user(updated).model_dump(mode="json")}

    # Email + password

    @router.post("/login", dependencies=[Depends(rate_limiter.dependency(LOGIN_LIMIT))])
    def login(request: Request, body: EmailPasswordRequest):
        result = auth_service.email_login(body.email, body.password, **_client(request))
        return logged_in(result)

    @router.post("/register", dependencies=[Depends(rate_limiter.dependency(REGISTER_LIMIT))])
    def register(request: Request, body: RegisterRequest):
        result = auth_service.email_register(
            body.email, body.password, metadata=body.metadata, **_client(request)
        )
        return logged_in(result)

    @router.get("/logout")
    def logout(
        request: Request,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        auth_service.logout(session.id, user_id=user.id, ip_address=get_client_ip(request))
        response = JSONResponse({"success": True})
        delete_session_cookie(response, config)
        return response

    @router.post("/revoke")
    def revoke(
        request: Request,
        body: RevokeSessionRequest,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        auth_service.revoke_session(user.id, body.revoke_id, ip_address=get_client_ip(request))
        response = JSONResponse({"success": True})
        if session.revoke_id == body.revoke_id:
            delete_session_cookie(response, config)
        return response

    # OTP

    @router.post("/login/otp", dependencies=[Depends(rate_limiter.dependency(EMAIL_SEND_LIMIT))])
    def send_otp(request: Request, body: EmailRequest):
        user_id = auth_service.email_otp_login_send(body.email, ip_address=get_client_ip(request))
        return {"success": True, "userId": str(user_id)}

    @router.post(
        "/login/otp/verify",
        dependencies=[Depends(rate_limiter.dependency(VERIFICATION_LIMIT))],
    )
    def verify_otp(request: Request, body: OTPVerifyRequest):
        result = auth_service.verify_otp_or_token_login(
            user_id=body.user_id, code=body.code, **_client(request)
        )
        return logged_in(result)

    # Magic link

    @router.post(
        "/login/magic-link",
        dependencies=[Depends(rate_limiter.dependency(EMAIL_SEND_LIMIT))],
    )
    def send_magic_link(request: Request, body: EmailRequest):
        auth_service.magic_link_login_send(body.email, ip_address=get_client_ip(request))
        return {"success": True}

    @router.get("/login/magic-link/verify")
    def verify_magic_link(
        request: Request,
        token: str = Query(...),
        fallback_url: str | None = Query(None),
    ):
        try:
            result = auth_service.magic_link_login_verify(token, **_client(request))
        except AuthError as e:
            return failed_redirect(fallback_url, e.message or "Magic link verification failed")

        response = redirect(safe_redirect_url(config.app_base_url, fallback_url))
        set_session_cookie(response, result.session, config)
        return response

    # Password reset

    @router.post(
        "/forgot-password",
        dependencies=[Depends(rate_limiter.dependency(EMAIL_SEND_LIMIT))],
    )
    def forgot_password(request: Request, body: EmailRequest):
        auth_service.forgot_password_send(body.email, ip_address=get_client_ip(request))
        return {"success": True}

    @router.get("/forgot-password/verify")
    def forgot_password_landing(token: str = Query(...)):
        """Email link target: bounce to the reset form if the token is still good."""
        try:
            auth_service.validate_reset_token(token)
        except AuthError as e:
            return failed_redirect(None, e.message or "Password reset verification failed")

        base = config.app_base_url.rstrip("/")
        return redirect(append_query_param(f"{base}/forgot-password", "token", token))

    @router.post("/forgot-password/verify")
    def forgot_password_verify(request: Request, body: ForgotPasswordVerifyRequest):
        auth_service.forgot_password_verify(
            body.token, body.new_password, ip_address=get_client_ip(request)
        )
        return {"success": True}

    # Email verification

    @router.post("/verify-email", dependencies=[Depends(rate_limiter.dependency(EMAIL_SEND_LIMIT))])
    def send_email_verification(request: Request, body: EmailRequest):
        auth_service.email_verification_send(body.email, ip_address=get_client_ip(request))
        return {"success": True}

    @router.get("/verify-email/verify")
    def verify_email(
        request: Request,
        token: str = Query(...),
        fallback_url: str | None = Query(None),
    ):
        try:
            auth_service.email_verification_verify(token, ip_address=get_client_ip(request))
        except AuthError as e:
            return failed_redirect(fallback_url, e.message or "Email verification failed")
        return redirect(safe_redirect_url(config.app_base_url, fallback_url))

    # OAuth

    @router.get("/login/{provider}")
    def oauth_login(provider: str, redirect_url: str | None = Query(None)):
        authorization = auth_service.begin_oauth_login(provider, redirect_url)
        response = redirect(authorization.authorization_url)
        set_oauth_cookies(response, authorization.cookies, config)
        return response

    @router.get("/login/{provider}/callback")
    def oauth_callback(
        request: Request,
        provider: str,
        code: str | None = Query(None),
        state: str | None = Query(None),
    ):
        cookies = request.cookies
        result = auth_service.complete_oauth_login(
            provider,
            code=code,
            state=state,
            stored_state=cookies.get(f"{provider}_oauth_state"),
            stored_code_verifier=cookies.get(f"{provider}_oauth_codeverifier"),
            stored_redirect_url=cookies.get(f"{provider}_oauth_redirect_url"),
            **_client(request),
        )
        response = redirect(result.redirect_url)
        if result.session is not None:
            set_session_cookie(response, result.session, config)
        return response

    return router
