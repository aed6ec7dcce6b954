from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, Literal


class UserRegister(BaseModel):
    full_name: str = Field(..., min_length=5, max_length=255)
    email: EmailStr
    # Strength rules are checked in the endpoint so the client gets a 400 with every unmet rule
    password: str
    role: Literal["entrepreneur", "investor"]
    subscription_plan: Optional[str] = None
    agreed_to_terms: bool = False
    is_accredited_investor: Optional[bool] = False

    @model_validator(mode='after')
    def normalise(self):
        self.email = self.email.lower()
        self.full_name = self.full_name.strip()
        return self


class VerifyEmail(BaseModel):
    user_id: str
    otp: str = Field(..., min_length=6, max_length=6)


class ResendVerification(BaseModel):
    user_id: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None
