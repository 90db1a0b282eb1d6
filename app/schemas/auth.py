"""认证与账号相关的请求/响应模型"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


class UpdatePasswordRequest(BaseModel):
    password: str = Field(..., min_length=6)


class UserInfo(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    email_confirmed: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    user: UserInfo | None = None
    role: Literal["student", "teacher"] | None = None


class LoginResponse(SessionResponse):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class SignUpResponse(BaseModel):
    user: UserInfo
    role: Literal["student", "teacher"] = "student"
    email_confirmation_required: bool = True


class MessageResponse(BaseModel):
    success: bool = True
    message: str | None = None
