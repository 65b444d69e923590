"""Coupon negotiation policy for the Clerk.

A negotiation message is classified by tone and reason into a fixed discount
tier, capped by a ceiling that scales with the cart total, and turned into a
display code with a random suffix. Codes are not persisted or validated here.
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from typing import Callable

RUDE_RE = re.compile(
    r"\b(stupid|idiot|idiots|worst|trash|useless|hate|dumb|nonsense|shut up|garbage|pathetic|moron)\b",
    re.IGNORECASE,
)
CELEBRATION_RE = re.compile(r"\b(birthday|bday|b day|anniversary)\b", re.IGNORECASE)
POLITE_RE = re.compile(
    r"\b(please|pls|plz|thank you|thanks|thx|kindly|appreciate|would you|could you|would it be possible)\b",
    re.IGNORECASE,
)

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

SuffixGenerator = Callable[[], str]


def random_suffix(length: int = 4) -> str:
    """Return a random uppercase alphanumeric suffix."""
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class Coupon:
    discount_amount: int
    code: str
    prefix: str

    @property
    def is_deal(self) -> bool:
        return self.discount_amount > 0


def discount_ceiling(cart_total: float) -> int:
    """Max percentage the store will give for a cart of this size."""
    if cart_total >= 300:
        return 20
    if cart_total >= 150:
        return 15
    return 10


class CouponPolicy:
    """Map a negotiation message to a discount tier and a fresh coupon code."""

    def __init__(self, suffix_generator: SuffixGenerator = random_suffix) -> None:
        self._suffix_generator = suffix_generator

    def build_coupon_from_reason(self, reason: str, cart_total: float = 0.0) -> Coupon:
        """Purpose: Decide the discount for a negotiation message and mint a code.
        Inputs/Outputs: Inputs are the negotiation text and cart total; output is a Coupon.
        Side Effects / State: Calls the injected suffix generator once.
        Dependencies: Uses RUDE_RE, CELEBRATION_RE, POLITE_RE, discount_ceiling.
        Failure Modes: None; unrecognised text gets the flat SAVE tier.
        If Removed: Discount requests and the apply_coupon tool have no policy.
        Testing Notes: "you are stupid" -> NODEAL-0-*; "it's my birthday" at 500 -> BDAY-20-*;
            "could you please help" at 100 -> KIND-7-*.
        """
        # Tone first, then reason, then courtesy; rudeness earns no discount.
        text = reason or ""
        ceiling = discount_ceiling(cart_total or 0.0)
        if RUDE_RE.search(text):
            discount, prefix = 0, "NODEAL"
        elif CELEBRATION_RE.search(text):
            discount, prefix = 20, "BDAY"
        elif POLITE_RE.search(text):
            discount, prefix = 7, "KIND"
        else:
            discount, prefix = 5, "SAVE"
        discount = min(discount, ceiling)
        code = f"{prefix}-{abs(discount)}-{self._suffix_generator()}"
        return Coupon(discount_amount=discount, code=code, prefix=prefix)


def build_coupon_from_reason(reason: str, cart_total: float = 0.0) -> Coupon:
    """Module-level shortcut using the default random suffix."""
    return CouponPolicy().build_coupon_from_reason(reason, cart_total)
