import re
from enum import Enum
from typing import Optional


class Plan(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SIX_MONTHS = "6months"
    YEARLY = "yearly"
    PRO = "pro"
    CREATOR = "creator"

    @classmethod
    def parse(cls, value) -> Optional["Plan"]:
        """Return the Plan for a loosely formatted string, or None."""
        if isinstance(value, Plan):
            return value
        key = str(value or "").strip().lower()
        for plan in cls:
            if plan.value == key:
                return plan
        return None


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CHALLENGE = "CHALLENGE"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED)

    @property
    def rank(self) -> int:
        if self.is_terminal:
            return 2
        if self is OrderStatus.CHALLENGE:
            return 1
        return 0

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        key = str(value or "").strip().upper()
        for item in cls:
            if item.value == key:
                return item
        return cls.PENDING


class Role(str, Enum):
    USER = "User"
    WHITELIST = "Whitelist"
    TRADER = "Trader"
    CREATOR = "Creator"
    DEVELOPER = "Developer"


class Provider(str, Enum):
    XENDIT = "xendit"
    MIDTRANS = "midtrans"


# Order ids are an external contract: providers echo them back verbatim.
ORDER_PREFIXES = {
    Provider.XENDIT: "invoice",
    Provider.MIDTRANS: "midtrans",
}
ORDER_ID_PATTERN = re.compile(r"^(invoice|midtrans)-[a-z0-9]+-[0-9]+-[0-9]+$")
ORDER_PLAN_PATTERN = re.compile(r"^(invoice|midtrans)-([a-z0-9]+)-")
