# app/schemas/auth.py
from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, constr

from app.schemas.user import UserOut


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class OtpSendIn(BaseModel):
    email: EmailStr


class OtpSendOut(BaseModel):
    success: bool = True
    expires_in: int


class OtpVerifyIn(BaseModel):
    email: EmailStr
    otp: constr(strip_whitespace=True, min_length=6, max_length=6, pattern=r"^\d{6}$")


class GoogleLoginIn(BaseModel):
    token: str = Field(min_length=1, description="Google ID token or OAuth access token")


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class TokensOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthOut(TokensOut):
    user: UserOut
