"""
Daily usage budget for the external metadata API.

Tracks how many calls were dispatched today and refuses new ones once the
daily limit is reached. The counter resets the first time it is consulted on
a new calendar day. All access is serialized with a lock so concurrent
requests cannot both take the last unit.
"""

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional

from django.utils import timezone

from catalog.exceptions import BudgetExceeded

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 333


class UsageBudget:
    """
    Daily call counter with an injectable clock.

    Features:
    - consume() checks and increments atomically
    - Automatic reset on calendar day rollover
    - Low budget warning at 80% usage
    """

    WARNING_THRESHOLD = 0.80

    def __init__(
        self,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.daily_limit = daily_limit
        self._clock = clock or timezone.now
        self._lock = threading.Lock()
        self._count = 0
        self._reset_date = self._today()
        self._warned = False

    def _today(self) -> date:
        return self._clock().date()

    def _roll_over(self) -> None:
        # Caller holds the lock
        today = self._today()
        if today != self._reset_date:
            logger.info(
                f"Resetting API budget for {today} "
                f"(used {self._count}/{self.daily_limit} on {self._reset_date})"
            )
            self._count = 0
            self._reset_date = today
            self._warned = False

    def can_consume(self) -> bool:
        with self._lock:
            self._roll_over()
            return self._count < self.daily_limit

    def consume(self) -> int:
        """
        Take one unit of budget.

        Returns:
            The new usage count for today

        Raises:
            BudgetExceeded: If today's limit is already used up
        """
        with self._lock:
            self._roll_over()
            if self._count >= self.daily_limit:
                raise BudgetExceeded(self._count, self.daily_limit)
            self._count += 1

            if not self._warned and self._count >= self.daily_limit * self.WARNING_THRESHOLD:
                self._warned = True
                logger.warning(f"API budget at {self._count}/{self.daily_limit} for {self._reset_date}")

            return self._count

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_over()
            return self._count

    @property
    def remaining(self) -> int:
        with self._lock:
            self._roll_over()
            return max(0, self.daily_limit - self._count)

    def stats(self) -> Dict:
        """Usage snapshot: used, limit, remaining and the next reset date."""
        with self._lock:
            self._roll_over()
            return {
                "used": self._count,
                "limit": self.daily_limit,
                "remaining": max(0, self.daily_limit - self._count),
                "reset_date": (self._reset_date + timedelta(days=1)).isoformat(),
            }
