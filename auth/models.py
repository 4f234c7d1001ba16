"""
Request and response models for photoledger's HTTP API.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from core.transform import EnhanceMode


class EnhanceRequest(BaseModel):
    """Body of ``POST /api/enhance``."""
    image: str = ""
    mimeType: str = "image/jpeg"
    mode: EnhanceMode = EnhanceMode.FULL


class RemoveRequest(BaseModel):
    """Body of ``POST /api/remove``."""
    image: str = ""
    mimeType: str = "image/jpeg"
    objectToRemove: str = ""


class LeadRequest(BaseModel):
    email: EmailStr


class SimulatedCheckoutRequest(BaseModel):
    tier: str
    quantity: int = Field(default=1, ge=1, le=100)


class PayPerImageRequest(BaseModel):
    """Body of ``POST /api/checkout/pay-per-image``."""
    returnUrl: Optional[str] = None


class SignupRequest(BaseModel):
    """Account creation from a purchase token."""
    email: EmailStr
    password: str
    session: Optional[str] = None


class AuthToken(BaseModel):
    """JWT token model."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
