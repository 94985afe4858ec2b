import random
import re
import time
from typing import Optional

from app.models.enums import ORDER_ID_PATTERN, ORDER_PLAN_PATTERN

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def safe_plan(plan) -> str:
    return _NON_ALNUM.sub("", str(plan or "unknown").lower()) or "unknown"


def build_order_id(prefix: str, plan, now_ms: Optional[int] = None, rand: Optional[int] = None) -> str:
    """'<prefix>-<plan>-<unix millis>-<0..999>'"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rand is None:
        rand = random.randint(0, 999)
    return f"{prefix}-{safe_plan(plan)}-{now_ms}-{rand}"


def is_valid_order_id(order_id: str) -> bool:
    return bool(ORDER_ID_PATTERN.match(order_id or ""))


def decode_plan(order_id: str) -> Optional[str]:
    """Plan segment of an order id; only used when the stored plan is empty."""
    match = ORDER_PLAN_PATTERN.match(order_id or "")
    return match.group(2) if match else None
