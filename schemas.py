"""
Input schemas

Pydantic models validating the data posted by the HTML forms and the JSON API.
Form fields arrive as strings, so empty strings are treated as "not given".
"""

from datetime import datetime
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator, model_validator

from errors import ValidationFailed

PRICE_TIERS = ['€', '€€', '€€€', '€€€€']


class FormInput(BaseModel):

    @model_validator(mode='before')
    @classmethod
    def blank_to_none(cls, data):
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data


class RegisterInput(FormInput):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class LoginInput(FormInput):
    email: EmailStr
    password: str = Field(..., min_length=1)


class OAuthProfile(BaseModel):
    """Identity claims required from the provider's tokens."""
    email: EmailStr
    given_name: str
    family_name: str


class RestaurantInput(FormInput):
    name: str = Field(..., min_length=1, max_length=200)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class ImageInput(FormInput):
    url: str = Field(..., min_length=1)
    caption: Optional[str] = Field(None, max_length=255)


class ReviewInput(FormInput):
    restaurant_id: Optional[int] = Field(None, gt=0)
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    review: Optional[str] = Field(None, max_length=5000)
    price: Optional[str] = None
    visited_at: Optional[datetime] = None
    companions: List[int] = Field(default_factory=list)
    images: List[ImageInput] = Field(default_factory=list)

    @field_validator('price')
    @classmethod
    def known_price_tier(cls, value):
        if value is not None and value not in PRICE_TIERS:
            raise ValueError(f"price must be one of {', '.join(PRICE_TIERS)}")
        return value


class ReviewUpdate(ReviewInput):
    # None means "leave unchanged" for both collections
    companions: Optional[List[int]] = None
    images: Optional[List[ImageInput]] = None
    # Ids of stored images to keep; `images` are then added next to them
    keep_images: Optional[List[int]] = None


def normalize_email(value):
    """Normalise an address the way EmailStr does. None when it is not an address."""
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def validate(model, data):
    """Build `model` from `data`, raising ValidationFailed with a readable message."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = '.'.join(str(part) for part in first['loc'])
        message = f"{field}: {first['msg']}" if field else first['msg']
        raise ValidationFailed(f'Invalid input data ({message})') from e
