from pydantic import BaseModel, SecretStr, field_validator
from typing import Optional
from datetime import datetime


"""
auth/register
"""


class UserRegistrationModel(BaseModel):
    email: str
    username: str
    password: SecretStr

    @field_validator("email", "username")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        # casing is kept; the identity index normalizes its own keys
        return value.strip()


class UserModel(BaseModel):
    id: str
    email: str
    username: str


class AuthResponseModel(BaseModel):
    token: str
    user: UserModel


"""
auth/login
"""


class UserLoginModel(BaseModel):
    email: str
    password: SecretStr


"""
auth/me
"""


class MeResponseModel(BaseModel):
    id: str
    email: str
    username: str
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
