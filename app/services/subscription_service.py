from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional

from app.models.enums import Plan, Role
from app.utils.dates import add_months, as_utc, utcnow

# plan -> months added to max(current expiry, now)
PLAN_MONTHS = {
    Plan.MONTHLY: 1,
    Plan.QUARTERLY: 3,
    Plan.SIX_MONTHS: 6,
    Plan.YEARLY: 12,
}
LIFETIME_PLANS = {"pro", "creator", "lifetime"}
DEFAULT_MONTHS = 1


@dataclass(frozen=True)
class SubscriptionChange:
    grant: FrozenSet[str]
    remove: FrozenSet[str]
    expires_at: Optional[datetime]


def compute_subscription_change(
    current_expiry: Optional[datetime],
    plan,
    now: Optional[datetime] = None,
) -> SubscriptionChange:
    """Roles to grant/remove and the new expiry for a paid plan.

    Lifetime plans (pro, creator) clear the expiry. Unknown plans are
    treated as monthly.
    """
    key = str(plan.value if isinstance(plan, Plan) else plan or "").strip().lower()
    granted = Role.CREATOR.value if key == Plan.CREATOR.value else Role.TRADER.value
    grant = frozenset({granted})
    remove = frozenset({Role.WHITELIST.value})

    if key in LIFETIME_PLANS:
        return SubscriptionChange(grant=grant, remove=remove, expires_at=None)

    now = as_utc(now) or utcnow()
    current = as_utc(current_expiry)
    base = current if current is not None and current > now else now
    months = PLAN_MONTHS.get(Plan.parse(key), DEFAULT_MONTHS)
    return SubscriptionChange(grant=grant, remove=remove, expires_at=add_months(base, months))


def apply_roles(roles: Optional[Iterable[str]], change: SubscriptionChange) -> List[str]:
    """New role list: keeps existing order, always includes User."""
    result = [r for r in (roles or []) if r not in change.remove]
    if Role.USER.value not in result:
        result.insert(0, Role.USER.value)
    for role in sorted(change.grant):
        if role not in result:
            result.append(role)
    return result
