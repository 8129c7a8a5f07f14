"""
Cart API Pydantic Models

Request bodies for the cart endpoints.
"""
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class AddToCartRequest(BaseModel):
    id: Union[int, str]
    name: str
    price: Decimal
    quantity: Optional[int] = None
    image: str = ""
    image_alt: str = ""
    customizations: List[str] = Field(default_factory=list)
    special_requests: Optional[str] = None


class UpdateCartItemRequest(BaseModel):
    id: Union[int, str]
    quantity: int  # 0 or less removes the item


class ApplyPromoRequest(BaseModel):
    code: str


class IdentityRequest(BaseModel):
    user_id: Optional[str] = None  # None signs out
