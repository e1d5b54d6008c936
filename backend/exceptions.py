"""
Custom exception classes for Paystack operations.
"""
from typing import Optional


class PaystackError(Exception):
    """
    Raised when a Paystack call fails.

    status_code is the gateway's HTTP status when it answered; is_timeout and
    is_network distinguish calls that never got an answer.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        is_timeout: bool = False,
        is_network: bool = False,
        payload: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.is_timeout = is_timeout
        self.is_network = is_network
        self.payload = payload or {}

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429
