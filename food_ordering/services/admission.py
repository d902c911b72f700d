"""
Admission Gate

Decides whether a new order may be created right now. Order creation calls
it after loading the store configuration and before writing anything, in
the same database session as the insert.

Known race: the store can close between the admission check and the
commit of the order. The window is a single request long and the business
impact is at most one order accepted just after closing, so no distributed
lock is taken. Reconciling such orders is left to operator cancellation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, tzinfo
from typing import Optional, Union

from food_ordering.core.exceptions import StoreClosedError
from food_ordering.services.schedule import (
    AvailabilityVerdict,
    MESSAGE_CLOSED,
    StoreAvailabilityConfig,
    resolve_availability,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    accepted: bool
    reason: Optional[str] = None
    next_change_time: Optional[str] = None

    def raise_for_rejection(self) -> None:
        if not self.accepted:
            raise StoreClosedError(self.reason or MESSAGE_CLOSED, self.next_change_time)


class AdmissionGate:
    """Composes the schedule resolver with the store-mode override."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def verdict(
        self,
        config: Optional[StoreAvailabilityConfig],
        now: Union[datetime, time],
    ) -> AvailabilityVerdict:
        """Resolve availability, failing closed when the config is unusable."""
        if config is None:
            logger.error("Store configuration unavailable; refusing orders")
            return AvailabilityVerdict(False, MESSAGE_CLOSED, None, "UNKNOWN")
        try:
            return resolve_availability(config, now, self.tz)
        except Exception:
            logger.exception("Store availability could not be resolved; refusing orders")
            return AvailabilityVerdict(False, MESSAGE_CLOSED, None, "UNKNOWN", config.contact_phone)

    def admit(
        self,
        config: Optional[StoreAvailabilityConfig],
        now: Union[datetime, time],
    ) -> AdmissionDecision:
        verdict = self.verdict(config, now)
        if verdict.is_open:
            return AdmissionDecision(accepted=True)

        logger.info(f"Order rejected: {verdict.message} (next change {verdict.next_change_time})")
        return AdmissionDecision(
            accepted=False,
            reason=verdict.message,
            next_change_time=verdict.next_change_time,
        )
