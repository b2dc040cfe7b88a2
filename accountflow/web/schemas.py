"""
Pydantic schemas for submitted auth forms.

Forms are validated before any state changes. A failed validation becomes
an AuthFlowError that sends the user back to the form.
"""

from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from accountflow.auth.service import AuthFlowError

MIN_PASSWORD_LENGTH = 8

FormT = TypeVar("FormT", bound=BaseModel)


class _Form(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterForm(_Form):
    """New local account."""

    email: EmailStr
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class LoginForm(_Form):
    email: str = ""
    password: str = ""


class EmailForm(_Form):
    email: EmailStr


class PasswordUpdateForm(_Form):
    """Signed-in password change."""

    current_password: str = Field(..., alias="currentPass", min_length=1)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class PasswordResetForm(_Form):
    """New password submitted through a reset link."""

    ulc: str = Field(..., min_length=1)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


def _describe(error: dict) -> str:
    field = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid value")
    return f"{field}: {message}" if field else message


def parse_form(model: Type[FormT], data: Mapping[str, Any], redirect: str) -> FormT:
    """
    Validate submitted form data against a schema.

    Raises AuthFlowError(400) pointing back at the form on the first problem.
    """
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        errors = e.errors()
        message = _describe(errors[0]) if errors else "Invalid submission"
        raise AuthFlowError(message, 400, redirect)
