import os
import tempfile
from decimal import Decimal

_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="food_ordering_tests_"), "test.db")

# Must be in place before food_ordering reads its settings
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["ENV_MODE"] = "development"
os.environ["CELERY_ALWAYS_EAGER"] = "true"
os.environ["NOTIFY_ADMINS_ON_NEW_ORDER"] = "false"
os.environ["STORE_TIMEZONE"] = "Asia/Tashkent"
os.environ["DEFAULT_DELIVERY_FEE"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from food_ordering.core.config import get_settings
from food_ordering.database import Base, async_session_maker
from food_ordering.models import Product, Setting
from food_ordering.services.broadcaster import reset_broadcaster
from food_ordering.services.notifications import reset_notification_service
from food_ordering.services.otp import get_otp_service
from food_ordering.services.state_machine import reset_state_machine

PLOV = "prod-plov"
SAMSA = "prod-samsa"
TEA = "prod-tea"

sync_engine = create_engine(f"sqlite:///{_DB_PATH}")


def _reset_schema() -> None:
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)

    with Session(sync_engine) as session:
        session.add_all([
            Product(id=PLOV, name="Plov", price=Decimal("45000")),
            Product(id=SAMSA, name="Samsa", price=Decimal("10000")),
            Product(id=TEA, name="Green tea", price=Decimal("5000")),
            Setting(key="store_mode", value="OPEN"),
        ])
        session.commit()


@pytest.fixture(autouse=True)
def fresh_state():
    """Fresh schema, catalog and singletons for every test."""
    _reset_schema()
    reset_broadcaster()
    reset_state_machine()
    reset_notification_service()
    get_otp_service.cache_clear()
    yield
    reset_broadcaster()
    reset_state_machine()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def db():
    async with async_session_maker() as session:
        yield session


@pytest.fixture
def session_factory():
    return async_session_maker


@pytest.fixture
def client():
    from food_ordering.main import app

    with TestClient(app) as test_client:
        yield test_client
