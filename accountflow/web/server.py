"""
FastAPI Web Server for Account Flow.

Wires the auth and profile routers behind cookie sessions and renders every
AuthFlowError through one handler: flash + redirect when the error names a
destination, an error page otherwise.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from accountflow.accounts.models import get_session, init_db
from accountflow.auth.links import purge_dead_links
from accountflow.auth.service import AuthFlowError
from accountflow.config import get_session_secret, settings
from accountflow.logging_utils import install_log_safety
from accountflow.web.dependencies import AuthContext
from accountflow.web.routes import auth_router, users_router
from accountflow.web.utils import redirect_to, render_page

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        install_log_safety()
    except Exception:
        # Logging should never prevent app startup.
        logger.debug("Log safety not installed", exc_info=True)

    init_db()

    if settings.purge_links_on_startup:
        session = get_session()
        try:
            removed = purge_dead_links(session)
        finally:
            session.close()
        if removed:
            logger.info(f"Removed {removed} consumed or expired links")

    yield


# Initialize FastAPI app
app = FastAPI(
    title="Account Flow",
    description="Registration, login, email confirmation and password reset",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    SessionMiddleware,
    secret_key=get_session_secret(),
    session_cookie="accountflow_session",
    max_age=settings.session_max_age_days * 24 * 60 * 60,
    same_site="lax",
    https_only=settings.session_https_only,
)

app.include_router(auth_router)
app.include_router(users_router)


# ==================== ERROR HANDLING ====================


@app.exception_handler(AuthFlowError)
async def auth_flow_error_handler(request: Request, exc: AuthFlowError):
    """Flash the message and send the user somewhere useful."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    if exc.redirect:
        AuthContext(request.session).flash(exc.message, "error")
        return redirect_to(exc.redirect)

    return render_page(
        request,
        "error.html",
        {"message": exc.message, "status_code": exc.status_code},
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Anything else: log it and show a generic failure page."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return render_page(
        request,
        "error.html",
        {"message": "Oh no, something went wrong!", "status_code": 500},
        status_code=500,
    )


# ==================== PAGES ====================


@app.get("/")
async def home(request: Request):
    """Send signed-in users to their profile, everyone else to login."""
    ctx = AuthContext(request.session)
    if ctx.is_authenticated:
        return redirect_to(f"/users/{ctx.user_id}")
    return redirect_to("/auth/login")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return JSONResponse({"status": "ok", "timestamp": datetime.now().isoformat()})
