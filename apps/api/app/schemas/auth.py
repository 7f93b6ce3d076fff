from typing import Optional

from pydantic import EmailStr, Field

from apps.api.app.schemas.user import CamelModel, UserOut


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1, max_length=256)


class LoginResponse(CamelModel):
    success: bool = True
    message: str = "Login successful"
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class RefreshResponse(CamelModel):
    success: bool = True
    message: str = "Token refreshed successfully"
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class VerifyResponse(CamelModel):
    success: bool = True
    valid: bool = True
    user: dict


class MessageResponse(CamelModel):
    success: bool = True
    message: str
