# cart_engine/domain/owner.py
from dataclasses import dataclass
from typing import Union

from cart_engine.domain.exceptions import CartValidationError

MAX_GUEST_TOKEN_LENGTH = 64


@dataclass(frozen=True)
class AccountOwner:
    """Cart owned by an authenticated account."""

    account_id: int

    def __post_init__(self):
        if not isinstance(self.account_id, int) or isinstance(self.account_id, bool) or self.account_id <= 0:
            raise CartValidationError("Account id must be a positive integer", field="account_id")

    @property
    def is_guest(self) -> bool:
        return False


@dataclass(frozen=True)
class GuestOwner:
    """Cart owned by an anonymous client identified by a guest token."""

    token: str

    def __post_init__(self):
        if not self.token or not self.token.strip():
            raise CartValidationError("Guest token is required", field="guest_token")
        if len(self.token) > MAX_GUEST_TOKEN_LENGTH:
            raise CartValidationError("Guest token is too long", field="guest_token")

    @property
    def is_guest(self) -> bool:
        return True


CartOwner = Union[AccountOwner, GuestOwner]
