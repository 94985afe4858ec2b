import logging
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import status

from app.core.errors import PaymentError
from app.core.security import is_developer
from app.models.enums import Plan
from app.models.pricing import Pricing
from app.repositories.pricing_repository import PricingRepository
from app.schemas.pricing import PricingItem

logger = logging.getLogger(__name__)

# plan -> (usd, idr); used to seed empty tables and when a stored price is zero
DEFAULT_PRICES: Dict[Plan, Tuple[float, float]] = {
    Plan.MONTHLY: (2, 30000),
    Plan.QUARTERLY: (5, 75000),
    Plan.SIX_MONTHS: (9, 140000),
    Plan.YEARLY: (18, 270000),
    Plan.PRO: (80, 1200000),
    Plan.CREATOR: (200, 3000000),
}


def default_price(plan) -> Tuple[float, float]:
    parsed = Plan.parse(plan)
    return DEFAULT_PRICES.get(parsed, DEFAULT_PRICES[Plan.MONTHLY])


class PricingService:
    """Authoritative plan price table, seeded from DEFAULT_PRICES on first use."""

    def __init__(self, repo: PricingRepository):
        self.repo = repo
        self._seeded = False

    def ensure_defaults(self) -> List[Pricing]:
        if not self._seeded:
            existing = self.repo.existing_plans()
            missing = [plan for plan in Plan if plan.value not in existing]
            for plan in missing:
                usd, idr = DEFAULT_PRICES[plan]
                self.repo.add(
                    Pricing(
                        plan=plan.value,
                        current_usd=usd,
                        original_usd=usd,
                        current_idr=idr,
                        original_idr=idr,
                    )
                )
            if missing:
                self.repo.db.commit()
                logger.info(f"Seeded default pricing for plans: {[p.value for p in missing]}")
            self._seeded = True
        return self.repo.list_all()

    def list(self) -> List[Pricing]:
        return self.ensure_defaults()

    def get(self, plan) -> Optional[Pricing]:
        self.ensure_defaults()
        parsed = Plan.parse(plan)
        if parsed is None:
            return None
        return self.repo.get_by_plan(parsed.value)

    def current_usd(self, plan) -> float:
        row = self.get(plan)
        if row is not None and (row.current_usd or 0) > 0:
            return float(row.current_usd)
        return float(default_price(plan)[0])

    def current_idr(self, plan) -> float:
        row = self.get(plan)
        if row is not None and (row.current_idr or 0) > 0:
            return float(row.current_idr)
        return float(default_price(plan)[1])

    def nearest_plan_by_idr(self, amount: float) -> Optional[str]:
        """Plan whose current IDR price is closest to amount."""
        best_plan = None
        best_diff = float("inf")
        for row in self.ensure_defaults():
            diff = abs(float(row.current_idr or 0) - float(amount or 0))
            if diff < best_diff:
                best_diff = diff
                best_plan = row.plan
        return best_plan

    def update_many(self, requester, items: Iterable[PricingItem]) -> List[Pricing]:
        if not is_developer(requester):
            raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)
        items = list(items or [])
        if not items:
            raise PaymentError("invalid_payload")

        self.ensure_defaults()
        for item in items:
            plan = Plan.parse(item.plan)
            if plan is None:
                logger.warning(f"Skipping pricing update for unknown plan '{item.plan}'")
                continue
            row = self.repo.get_by_plan(plan.value)
            if row is None:
                # originals are only written when the row is first created
                row = self.repo.add(
                    Pricing(
                        plan=plan.value,
                        original_usd=item.original_usd,
                        original_idr=item.original_idr,
                    )
                )
            row.current_usd = item.current_usd
            row.current_idr = item.current_idr
        self.repo.db.commit()
        logger.info(f"Pricing updated by user {requester.id}")
        return self.repo.list_all()

    def reset_current_to_original(self, requester) -> List[Pricing]:
        if not is_developer(requester):
            raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)
        rows = self.ensure_defaults()
        for row in rows:
            row.current_usd = row.original_usd
            row.current_idr = row.original_idr
        self.repo.db.commit()
        logger.info(f"Pricing reset to original by user {requester.id}")
        return rows
