from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.pricing import Pricing


class PricingRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_all(self) -> List[Pricing]:
        return self.db.query(Pricing).order_by(Pricing.id).all()

    def get_by_plan(self, plan: str) -> Optional[Pricing]:
        return self.db.query(Pricing).filter(Pricing.plan == plan).first()

    def existing_plans(self) -> set:
        return {row[0] for row in self.db.query(Pricing.plan).all()}

    def add(self, row: Pricing) -> Pricing:
        self.db.add(row)
        self.db.flush()
        return row
