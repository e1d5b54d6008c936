"""
Domain enums shared by services and routers.
"""

from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = "pending"
    HOLD = "hold"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    PAY_ON_DELIVERY = "pay_on_delivery"


class ProductCategory(str, Enum):
    CLOTHING = "clothing"
    FOOTWEAR = "footwear"
    BAGS_ACCESSORIES = "bags & accessories"
    UNDERGARMENTS = "undergarments"
    KIDS_BABY_FASHION = "kids & baby fashion"


class Role(str, Enum):
    USER = "user"
    SELLER = "seller"
    GUEST = "guest"
