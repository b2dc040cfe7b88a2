"""
Authentication routes.

Provides endpoints for:
- Registration
- Login/Logout (local password and Google)
- Email confirmation and resend
- Password update and link-based password reset

Every POST/PUT answers with a 303 redirect and a flash message. Domain
failures raise AuthFlowError and are rendered by the server's handler.
"""

import logging
import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from accountflow.accounts.models import User
from accountflow.auth import service
from accountflow.auth.strategies import CredentialVerifier, GoogleVerifier
from accountflow.web.dependencies import (
    AuthContext,
    get_auth_context,
    get_db,
    get_google_verifier,
    get_local_verifier,
    require_user,
    require_valid_reset_link,
)
from accountflow.web.schemas import (
    EmailForm,
    LoginForm,
    PasswordResetForm,
    PasswordUpdateForm,
    RegisterForm,
    parse_form,
)
from accountflow.web.utils import redirect_to, render_page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

WELCOME_NEW = "Welcome! Please check your messages and confirm your email address."
WELCOME_BACK = "Welcome back!"
LOGIN_FAILED = "Password or username is incorrect"
GOOGLE_FAILED = "Unable to sign in with Google. Please try again."


def _profile_url(user: User) -> str:
    return f"/users/{user.id}"


# ==================== REGISTRATION ====================


@router.get("/register", response_class=HTMLResponse)
async def register_page(request: Request):
    """Registration page."""
    return render_page(request, "auth/register.html")


@router.post("/register")
async def register(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Create a local account, sign it in and send the confirmation link."""
    form = parse_form(RegisterForm, await request.form(), "/auth/register")

    user, _ = await service.register_user(db, form.email, form.display_name or None, form.password)

    ctx.login(user)
    ctx.flash(WELCOME_NEW)
    return redirect_to(ctx.pop_redirect_target(_profile_url(user)))


# ==================== LOGIN / LOGOUT ====================


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    """Login page."""
    return render_page(request, "auth/login.html")


@router.post("/login")
async def login(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    verifier: CredentialVerifier = Depends(get_local_verifier),
):
    """Sign in with email and password."""
    form = parse_form(LoginForm, await request.form(), "/auth/login")

    user = await verifier.verify(db, email=form.email, password=form.password)
    if not user:
        ctx.flash(LOGIN_FAILED, "error")
        return redirect_to("/auth/login")

    ctx.login(user)
    ctx.flash(WELCOME_BACK)
    return redirect_to(ctx.pop_redirect_target(_profile_url(user)))


@router.get("/logout")
async def logout(ctx: AuthContext = Depends(get_auth_context)):
    """Sign out and go back to the login page."""
    ctx.logout()
    ctx.flash("Successfully logged out!")
    return redirect_to("/auth/login")


# ==================== GOOGLE ====================


@router.get("/google")
async def google_login(
    ctx: AuthContext = Depends(get_auth_context),
    verifier: GoogleVerifier = Depends(get_google_verifier),
):
    """Start the Google OAuth handshake."""
    state = secrets.token_urlsafe(16)
    ctx.set_oauth_state(state)
    return redirect_to(verifier.authorization_url(state))


@router.get("/google/callback")
async def google_callback(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    verifier: GoogleVerifier = Depends(get_google_verifier),
):
    """Finish the Google handshake and sign the user in."""
    params = request.query_params
    expected_state = ctx.pop_oauth_state()

    if params.get("error") or not expected_state or params.get("state") != expected_state:
        logger.info(f"Google callback rejected: error={params.get('error')}")
        ctx.flash(GOOGLE_FAILED, "error")
        return redirect_to("/auth/login")

    user = await verifier.verify(db, code=params.get("code"))
    if not user:
        ctx.flash(GOOGLE_FAILED, "error")
        return redirect_to("/auth/login")

    ctx.login(user)
    if user.email and not user.verified:
        ctx.flash(WELCOME_NEW)
    else:
        ctx.flash(WELCOME_BACK)
    return redirect_to(ctx.pop_redirect_target(_profile_url(user)))


# ==================== EMAIL CONFIRMATION ====================


@router.get("/confirmation/email")
async def confirm_email(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Consume an emailConfirm link from the ulc query parameter."""
    service.confirm_email(db, request.query_params.get("ulc"), user.id)

    ctx.flash("Thank you! Email has been verified.")
    return redirect_to(_profile_url(user))


@router.post("/confirmation/email")
async def resend_confirmation(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Send a new confirmation link to the user named by the id field."""
    form = await request.form()
    target = await service.resend_confirmation(db, form.get("id"))

    ctx.flash(
        "A confirmation email has been sent.  "
        "Please check your spam folder if you do not see it in your inbox."
    )
    return redirect_to(_profile_url(target))


# ==================== UPDATE PASSWORD ====================


@router.get("/password/update", response_class=HTMLResponse)
async def password_update_page(request: Request, user: User = Depends(require_user)):
    """Password change form for a signed-in user."""
    return render_page(request, "auth/update.html", {"ulc": None})


@router.api_route("/password/update", methods=["PUT", "POST"])
async def password_update(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Change the password after proving the current one."""
    form = parse_form(PasswordUpdateForm, await request.form(), "/auth/password/update")

    await service.change_password(db, user.id, form.current_password, form.password)

    ctx.flash("Successfully updated password")
    return redirect_to(f"/auth/{user.id}")


# ==================== RESET PASSWORD ====================


@router.get("/password/reset/request", response_class=HTMLResponse)
async def password_reset_request_page(request: Request):
    """Forgot password page."""
    return render_page(request, "auth/reset.html")


@router.post("/password/reset/request")
@router.post("/password/reset")
async def password_reset_request(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Email a reset link to a verified, password-based account."""
    form = parse_form(EmailForm, await request.form(), "/auth/password/reset/request")

    await service.request_password_reset(db, form.email)

    ctx.flash(
        "A message has been sent to the email address.  "
        "Please check your spam folder if you do not see it in your inbox."
    )
    return redirect_to("/auth/login")


@router.get("/password/reset/update", response_class=HTMLResponse)
async def password_reset_update_page(request: Request, ulc: str = Depends(require_valid_reset_link)):
    """New password form reached from a reset link."""
    return render_page(request, "auth/update.html", {"ulc": ulc})


@router.api_route("/password/reset/update", methods=["PUT", "POST"])
async def password_reset_update(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    ulc: str = Depends(require_valid_reset_link),
):
    """Spend the reset link and set the new password."""
    data = dict(await request.form())
    data["ulc"] = ulc
    form = parse_form(PasswordResetForm, data, f"/auth/password/reset/update?ulc={ulc}")

    await service.reset_password(db, form.ulc, form.password)

    ctx.flash("Successfully updated password")
    return redirect_to("/auth/login")


# ==================== ACCOUNT ====================


@router.get("/{user_id}", response_class=HTMLResponse)
async def account_page(request: Request, user_id: int, user: User = Depends(require_user)):
    """Account settings page. Registered last so it never shadows the routes above."""
    if user_id != user.id:
        raise service.AuthFlowError("You do not have permission to do that.", 403, f"/auth/{user.id}")
    return render_page(request, "auth/account.html", {"user": user})
