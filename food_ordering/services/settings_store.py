"""
Store Settings

Operator-editable settings are stored as string key/value rows and read on
every request, so a change made in the admin console takes effect on the
next order without restarting anything.

Keys used by the ordering core:
    store_mode      AUTO | OPEN | CLOSED
    work_start      HH:mm
    work_end        HH:mm
    break_start     HH:mm
    break_end       HH:mm
    phone           contact phone shown while closed
    delivery_price  delivery fee snapshotted into new DELIVERY orders
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import Settings, get_settings
from food_ordering.models import Setting
from food_ordering.services.pricing import to_money
from food_ordering.services.schedule import StoreAvailabilityConfig, StoreMode

logger = logging.getLogger(__name__)

STORE_MODE = "store_mode"
WORK_START = "work_start"
WORK_END = "work_end"
BREAK_START = "break_start"
BREAK_END = "break_end"
CONTACT_PHONE = "phone"
DELIVERY_PRICE = "delivery_price"

AVAILABILITY_KEYS = (STORE_MODE, WORK_START, WORK_END, BREAK_START, BREAK_END, CONTACT_PHONE)


class SettingsStore:
    """Key/value access to the ``settings`` table."""

    def __init__(self, db: AsyncSession, app_settings: Optional[Settings] = None):
        self.db = db
        self.app_settings = app_settings or get_settings()

    async def get_setting(self, key: str) -> Optional[str]:
        setting = await self.db.get(Setting, key)
        return setting.value if setting else None

    async def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        result = await self.db.execute(select(Setting).where(Setting.key.in_(list(keys))))
        return {s.key: s.value for s in result.scalars().all()}

    async def list_settings(self) -> list[Setting]:
        result = await self.db.execute(select(Setting).order_by(Setting.key))
        return list(result.scalars().all())

    async def set_setting(self, key: str, value: str) -> Setting:
        """Insert or update a setting and commit."""
        setting = await self.db.get(Setting, key)
        if setting is None:
            setting = Setting(key=key, value=value)
            self.db.add(setting)
        else:
            setting.value = value
            setting.updated_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(setting)
        logger.info(f"Setting {key} updated")
        return setting

    async def load_availability_config(self) -> StoreAvailabilityConfig:
        """
        Hydrate the availability config; absent keys take process defaults.

        A present but empty ``store_mode`` is passed through so the resolver
        rejects it as corrupted.
        """
        raw = await self.get_many(AVAILABILITY_KEYS)
        defaults = self.app_settings

        return StoreAvailabilityConfig(
            mode=raw.get(STORE_MODE, StoreMode.AUTO.value),
            work_start=raw.get(WORK_START) or defaults.default_work_start,
            work_end=raw.get(WORK_END) or defaults.default_work_end,
            break_start=raw.get(BREAK_START) or defaults.default_break_start,
            break_end=raw.get(BREAK_END) or defaults.default_break_end,
            contact_phone=raw.get(CONTACT_PHONE) or defaults.default_contact_phone,
        )

    async def load_delivery_fee(self) -> Decimal:
        raw = await self.get_setting(DELIVERY_PRICE)
        if raw is None or not raw.strip():
            return to_money(self.app_settings.default_delivery_fee)

        try:
            fee = Decimal(raw.strip())
        except InvalidOperation:
            logger.warning(f"Malformed delivery_price={raw!r}, using default")
            return to_money(self.app_settings.default_delivery_fee)

        if not fee.is_finite() or fee < 0:
            logger.warning(f"Invalid delivery_price={raw!r}, using default")
            return to_money(self.app_settings.default_delivery_fee)
        return to_money(fee)
