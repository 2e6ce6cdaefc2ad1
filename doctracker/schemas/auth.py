from pydantic import BaseModel, EmailStr, Field


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    username: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    full_name: str | None = None
    password: str = Field(min_length=6)


class RefreshRequest(BaseModel):
    refresh_token: str
