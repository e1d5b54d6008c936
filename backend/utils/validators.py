"""
Input validation utilities for the Marketplace API.

Provides reusable validators for bank details, categories and guest sessions.
"""
import re
import uuid

from domain.constants import ACCOUNT_NUMBER_LENGTH
from domain.enums import ProductCategory
from domain.errors import ValidationError

_ACCOUNT_NUMBER_RE = re.compile(rf"^\d{{{ACCOUNT_NUMBER_LENGTH}}}$")


def validate_account_number(account_number: str) -> str:
    """
    Validate a NUBAN account number (exactly 10 digits).

    Raises:
        ValidationError(400) if the number is malformed
    """
    if not account_number or not _ACCOUNT_NUMBER_RE.match(account_number):
        raise ValidationError(f"Account number must be exactly {ACCOUNT_NUMBER_LENGTH} digits")
    return account_number


def mask_account_number(account_number: str) -> str:
    """Keep only the last four digits: '0123456789' -> '******6789'."""
    if len(account_number) <= 4:
        return account_number
    return "*" * (len(account_number) - 4) + account_number[-4:]


def normalize_category(category: str) -> str:
    """
    Lowercase/trim a category and check it against the catalog enum.

    Raises:
        ValidationError(400) for unknown categories
    """
    value = (category or "").strip().lower()
    allowed = [c.value for c in ProductCategory]
    if value not in allowed:
        raise ValidationError(
            f"Invalid category '{category}'. Allowed: {', '.join(allowed)}",
            details={"allowed": allowed},
        )
    return value


def category_slug(category: str) -> str:
    """Presentation form used by product detail pages ('bags & accessories' -> 'bags-accessories')."""
    value = category.lower()
    if value == "clothes":
        return "clothing"
    return value.replace(" & ", "-")


def new_session_id() -> str:
    return str(uuid.uuid4())
