"""
Request models for creating and updating listings.
"""

from pydantic import BaseModel, ValidationError, field_validator
from typing import Optional

from .errors import InvalidRequestError
from util.logging import logger


class CreateVisionRequest(BaseModel):
    description: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    file_path: Optional[str] = None
    price: Optional[int] = None

    @field_validator('description')
    @classmethod
    def description_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('description cannot be empty')
        return v.strip()

    @field_validator('user_id')
    @classmethod
    def user_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('user_id cannot be empty')
        return v

    @field_validator('price')
    @classmethod
    def price_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('price must be a non-negative amount in cents')
        return v


class CreateProductRequest(CreateVisionRequest):
    url: str

    @field_validator('url')
    @classmethod
    def url_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('url cannot be empty')
        return v.strip()


class UpdateListingRequest(BaseModel):
    on_sale: Optional[bool] = None
    price: Optional[int] = None

    @field_validator('price')
    @classmethod
    def price_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('price must be a non-negative amount in cents')
        return v


def parse_request(model, operation: str, **fields):
    """Build a request model, converting validation failures to InvalidRequestError."""
    try:
        return model(**fields)
    except ValidationError as e:
        logger.log_validation_error(operation, e.errors())
        raise InvalidRequestError(e.errors()[0]["msg"]) from e
