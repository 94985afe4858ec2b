from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Models register themselves through app/models/__init__.py


def init_db():
    """Create tables (waiting for the database to come up) and seed the price table."""
    from app.db.session import SessionLocal, engine
    from sqlalchemy import text
    import time
    import logging

    from app.models import User, Pricing, Coupon, CouponUsage, PaymentLog, WebhookLog  # noqa: F401
    from app.repositories.pricing_repository import PricingRepository
    from app.services.pricing_service import PricingService

    logger = logging.getLogger(__name__)

    max_retries = 30
    retry_delay = 2

    for attempt in range(max_retries):
        try:
            with engine.begin() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created/updated successfully")
            break
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(f"Database not ready, retrying in {retry_delay}s... (attempt {attempt + 1}/{max_retries})")
                time.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts: {e}")
                raise

    db = SessionLocal()
    try:
        PricingService(PricingRepository(db)).ensure_defaults()
    finally:
        db.close()
