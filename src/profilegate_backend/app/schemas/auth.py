# src/profilegate_backend/app/schemas/auth.py
"""
Request bodies for the /api/auth routes.

Field names are camelCase because that is the wire contract web clients
already speak; profile attribute names double as the claim keys stored in
the provider's user_metadata.
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class GoogleSessionBody(BaseModel):
    """Tokens handed over by the client after the provider's Google OAuth redirect."""
    model_config = ConfigDict(extra="ignore")

    accessToken: Text
    refreshToken: Optional[Text] = None
    expiresIn: Optional[int] = Field(default=None, ge=0)
    tokenType: Optional[Text] = None


class RefreshBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # optional: the refresh-token cookie is used when absent
    refreshToken: Optional[str] = None


class EmptyBody(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProfileMetadata(BaseModel):
    """User-entered profile attributes; every field optional."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[Text] = None
    gender: Optional[Text] = None
    dob: Optional[date] = None
    heightFeet: Optional[int] = Field(default=None, ge=0, le=8)
    heightInches: Optional[int] = Field(default=None, ge=0, le=11)
    religion: Optional[Text] = None
    caste: Optional[Text] = None
    rashi: Optional[Text] = None
    education: Optional[Text] = None
    occupation: Optional[Text] = None
    annualIncome: Optional[int] = Field(default=None, ge=0)
    maritalStatus: Optional[Text] = None
    homeAddress: Optional[Text] = None
    expectation: Optional[Text] = None
    city: Optional[Text] = None
    pincode: Optional[int] = Field(default=None, ge=100000, le=999999)
    state: Optional[Text] = None
    contactNumber: Optional[Text] = None

    @model_validator(mode="after")
    def _height_not_zero(self):
        feet, inches = self.heightFeet, self.heightInches
        if feet is None and inches is None:
            return self
        if (feet or 0) == 0 and (inches or 0) == 0:
            raise ValueError("provide height in feet and/or inches")
        return self

    def claims(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ProfileUpdateBody(ProfileMetadata):
    """Completing a profile requires every field the completeness rule checks."""

    name: Text
    gender: Text
    dob: date
    heightFeet: int = Field(ge=0, le=8)
    heightInches: int = Field(ge=0, le=11)
    religion: Text
    caste: Text
    rashi: Text


class RegisterBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=8)
    metadata: ProfileMetadata = Field(default_factory=ProfileMetadata)


class LoginBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=8)
