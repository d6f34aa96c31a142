"""Revenue split policy read from settings.

When enabled, every charge routes a fixed percentage to one configured
payout recipient. The policy is disabled unless ``PAYMENT_SPLIT_ENABLED``
is true and a recipient id with a percentage in (0, 100] is configured.
"""

import logging
from typing import List, Optional

from django.conf import settings

from .domain import SplitRule

logger = logging.getLogger(__name__)


class SplitPolicy:
    """Computes the split rules attached to a charge."""

    def __init__(
        self,
        enabled: bool | None = None,
        recipient_id: str | None = None,
        percentage=None,
        charge_processing_fee: bool | None = None,
        charge_remainder_fee: bool | None = None,
        liable: bool | None = None,
    ):
        self.enabled = getattr(settings, "PAYMENT_SPLIT_ENABLED", False) if enabled is None else enabled
        self.recipient_id = (
            recipient_id if recipient_id is not None else getattr(settings, "PAYMENT_SPLIT_RECIPIENT_ID", "")
        )
        self.percentage = (
            percentage if percentage is not None else getattr(settings, "PAYMENT_SPLIT_PERCENTAGE", "0")
        )
        self.charge_processing_fee = (
            getattr(settings, "PAYMENT_SPLIT_CHARGE_PROCESSING_FEE", False)
            if charge_processing_fee is None
            else charge_processing_fee
        )
        self.charge_remainder_fee = (
            getattr(settings, "PAYMENT_SPLIT_CHARGE_REMAINDER_FEE", False)
            if charge_remainder_fee is None
            else charge_remainder_fee
        )
        self.liable = getattr(settings, "PAYMENT_SPLIT_LIABLE", False) if liable is None else liable

    def _percentage(self) -> Optional[float]:
        try:
            value = float(self.percentage or 0)
        except (TypeError, ValueError):
            value = 0.0
        if value <= 0 or value > 100:
            logger.warning("invalid split percentage", extra={"percentage": self.percentage})
            return None
        return value

    def calculate_split(self, order=None) -> Optional[List[SplitRule]]:
        """Return the split rules for a charge, or None when splitting is off.

        Args:
            order: The order being charged. The current policy does not depend
                on it; it is accepted so per-order policies can be plugged in.
        """
        if not self.enabled:
            return None
        if not (self.recipient_id or "").strip():
            logger.info("split enabled without a recipient, skipping")
            return None
        percentage = self._percentage()
        if percentage is None:
            return None

        rules = [
            SplitRule(
                recipient_id=self.recipient_id.strip(),
                percentage=percentage,
                charge_processing_fee=bool(self.charge_processing_fee),
                charge_remainder_fee=bool(self.charge_remainder_fee),
                liable=bool(self.liable),
            )
        ]
        logger.info("split calculated", extra={"splits": len(rules), "percentage": percentage})
        return rules
