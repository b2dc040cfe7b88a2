"""
User profile routes.

The profile page is where successful sign-ins and confirmations land. It
shows the verification state and offers to resend the confirmation link.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from accountflow.accounts.models import User
from accountflow.auth.service import AuthFlowError
from accountflow.web.dependencies import require_user
from accountflow.web.utils import render_page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}", response_class=HTMLResponse)
async def profile_page(request: Request, user_id: int, user: User = Depends(require_user)):
    """Profile page for the signed-in user."""
    if user_id != user.id:
        raise AuthFlowError("You do not have permission to do that.", 403, f"/users/{user.id}")
    return render_page(request, "users/profile.html", {"user": user})
