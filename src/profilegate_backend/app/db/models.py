# src/profilegate_backend/app/db/models.py

import uuid

from sqlalchemy import (
    Column,
    Date,
    Integer,
    String,
    TIMESTAMP,
    Uuid,
    func,
)

from .session import Base


class Profile(Base):
    """
    Local projection of an identity-provider user.

    Rules:
      - external_id: the provider's stable user id; unique, written once at creation
      - identity fields (email, google_sub, full_name, avatar_url, country_code,
        last_login_at) are refreshed from provider claims on every login/refresh
      - extended attributes are user-entered and only change via the profile update flow
      - "profile complete" is derived on read and never stored
    """

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(String, unique=True, nullable=False, index=True)

    # identity-derived
    email = Column(String, nullable=False)
    google_sub = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    country_code = Column(String, nullable=True)
    last_login_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # extended attributes (password variant)
    gender = Column(String, nullable=True)
    dob = Column(Date, nullable=True)
    height_feet = Column(Integer, nullable=True)
    height_inches = Column(Integer, nullable=True)
    religion = Column(String, nullable=True)
    caste = Column(String, nullable=True)
    rashi = Column(String, nullable=True)
    education = Column(String, nullable=True)
    occupation = Column(String, nullable=True)
    annual_income = Column(Integer, nullable=True)
    marital_status = Column(String, nullable=True)
    home_address = Column(String, nullable=True)
    expectation = Column(String, nullable=True)
    city = Column(String, nullable=True)
    pincode = Column(Integer, nullable=True)
    state = Column(String, nullable=True)
    contact_number = Column(String, nullable=True)

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


IDENTITY_COLUMNS = (
    "email",
    "google_sub",
    "full_name",
    "avatar_url",
    "country_code",
    "last_login_at",
)

EXTENDED_COLUMNS = (
    "gender",
    "dob",
    "height_feet",
    "height_inches",
    "religion",
    "caste",
    "rashi",
    "education",
    "occupation",
    "annual_income",
    "marital_status",
    "home_address",
    "expectation",
    "city",
    "pincode",
    "state",
    "contact_number",
)
