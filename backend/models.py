"""
Shared Pydantic request models.

Clients send camelCase keys; models accept either the alias or the Python name.
Route-specific bodies live next to their routers.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    """Shared base: accepts either the Python name or the alias."""
    model_config = ConfigDict(populate_by_name=True)


class LineItem(ApiModel):
    """A (product, quantity, client-seen price) triple used by cart sync and checkout."""
    product_id: int = Field(..., alias="productId", gt=0)
    quantity: int = Field(1, ge=1)
    price: Optional[float] = Field(default=None, ge=0)

    def as_dict(self) -> dict:
        return {"product_id": self.product_id, "quantity": self.quantity, "price": self.price}


class ShippingInfo(ApiModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=3, max_length=30)
    address: str = Field(..., min_length=1, max_length=500)
    country: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
