"""
Shared utilities for the FastAPI web UI.

Page rendering pulls pending flash messages out of the session so each
message is shown exactly once.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from accountflow.config import is_google_configured, settings
from accountflow.web.dependencies import AuthContext

TEMPLATES_DIR = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def redirect_to(url: str) -> RedirectResponse:
    """303 so the browser follows with a GET after a form submit."""
    return RedirectResponse(url=url, status_code=303)


def render_page(
    request: Request,
    name: str,
    context: Optional[dict[str, Any]] = None,
    status_code: int = 200,
) -> HTMLResponse:
    """Render a template with flashes and the signed-in user id."""
    flashes: list[tuple[str, str]] = []
    user_id = None
    # Missing when rendering from the outermost error handler
    if "session" in request.scope:
        ctx = AuthContext(request.session)
        flashes = ctx.pop_flashes()
        user_id = ctx.user_id

    page_context = {
        "app_name": settings.app_name,
        "flashes": flashes,
        "current_user_id": user_id,
        "google_enabled": is_google_configured(),
    }
    page_context.update(context or {})

    return templates.TemplateResponse(request, name, page_context, status_code=status_code)
