import os

# Settings are read at import time; configure them before any app import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("XENDIT_SECRET_KEY", "xnd_development_test")
os.environ.setdefault("XENDIT_CALLBACK_TOKEN", "cb-token")
os.environ.setdefault("MIDTRANS_SERVER_KEY", "SB-Mid-server-test")
os.environ.setdefault("MIDTRANS_CLIENT_KEY", "SB-Mid-client-test")
os.environ["DISCORD_WEBHOOK_URL"] = ""

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.models.enums import OrderStatus  # noqa: E402
from app.models.payment_log import PaymentLog  # noqa: E402
from app.models.user import User  # noqa: E402
from app.utils.dates import utcnow  # noqa: E402
from tests.fakes import RecordingNotifier  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(roles=None, email=None, expires_at=None):
        counter["n"] += 1
        user = User(
            email=email or f"trader{counter['n']}@example.com",
            roles=list(roles or ["User"]),
            subscription_expires_at=expires_at,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_order(db):
    def _make(user, order_id, amount=30000, plan="monthly", status=OrderStatus.PENDING, coupon_code=None, age=None):
        order = PaymentLog(
            order_id=order_id,
            user_id=user.id,
            plan=plan,
            amount=amount,
            coupon_code=coupon_code,
            status=status.value,
            created_at=utcnow() - (age or timedelta(0)),
        )
        db.add(order)
        db.commit()
        return order

    return _make
