"""
Rolling-Window Rate Limiter for the Recipe Acquisition Pipeline.

Guards the costly paths (imports and model conversions) with a 60-minute
rolling window plus a daily counter per user and action type. Each check is
one optimistic read-modify-write on a versioned document: if another writer
got there first, the check is re-run against the fresh document.
"""
import math
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from recipe_acquisition.adapters.document_store import DocumentStore, VersionedDocument
from recipe_acquisition.config import config
from recipe_acquisition.errors import RateLimitContentionError, RateLimitExceededError
from recipe_acquisition.models.limits import (
    ActionType,
    RateLimitCeilings,
    RateLimitStatus,
    RollingWindowLimitInfo,
)
from recipe_acquisition.utils.logger import LayerLogger

RATE_LIMIT_WINDOW_MINUTES = 60
RECORD_TTL = timedelta(days=7)


def compute_wait_minutes(oldest_timestamp: float, now_timestamp: float) -> int:
    """Minutes until the oldest in-window action leaves the window, in [1, 60]."""
    elapsed_minutes = (now_timestamp - oldest_timestamp) / 60
    wait = math.ceil(RATE_LIMIT_WINDOW_MINUTES - elapsed_minutes)
    return max(1, min(RATE_LIMIT_WINDOW_MINUTES, wait))


class RollingWindowRateLimiter:
    """
    Per-user quota enforcement over the shared document store.

    No in-process locks: correctness across service instances comes from
    the store's compare_and_set().
    """

    def __init__(
        self,
        store: DocumentStore,
        ceilings: Optional[RateLimitCeilings] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.ceilings = ceilings or RateLimitCeilings(**config.get_rate_limit_ceilings())
        self.max_attempts = max_attempts or config.RATE_LIMIT_MAX_ATTEMPTS
        self.logger = LayerLogger("rate_limiter")

    def _window(self, info: RollingWindowLimitInfo, now_ts: float):
        window_start = now_ts - RATE_LIMIT_WINDOW_MINUTES * 60
        return [ts for ts in info.action_timestamps if ts > window_start]

    def _admit(
        self,
        document: Optional[VersionedDocument],
        user_id: str,
        action_type: ActionType,
        now: datetime,
    ) -> Tuple[RollingWindowLimitInfo, Optional[int]]:
        """Apply one action to the record, or raise RateLimitExceededError."""
        now_ts = now.timestamp()
        today = now.date().isoformat()
        expires_at = now + RECORD_TTL

        if document is None:
            info = RollingWindowLimitInfo(
                user_id=user_id,
                action_type=action_type,
                action_timestamps=[now_ts],
                daily_count=1,
                last_action_timestamp=now_ts,
                last_reset_date=today,
                created_at=now,
                expires_at=expires_at,
            )
            return info, None

        info = RollingWindowLimitInfo.model_validate(document.data)
        recent = self._window(info, now_ts)

        daily_count = info.daily_count if info.last_reset_date == today else 0

        hourly_limit = self.ceilings.hourly(action_type)
        if len(recent) >= hourly_limit:
            wait_minutes = compute_wait_minutes(min(recent), now_ts)
            raise RateLimitExceededError(
                f"{action_type.label} rate limit exceeded ({hourly_limit}/{RATE_LIMIT_WINDOW_MINUTES} minutes). "
                f"Please wait {wait_minutes} minutes.",
                wait_minutes=wait_minutes,
            )

        daily_limit = self.ceilings.daily(action_type)
        if daily_count >= daily_limit:
            raise RateLimitExceededError(
                f"Daily {action_type.value} limit reached ({daily_limit}/day). Please try again tomorrow."
            )

        updated = info.model_copy(update={
            "action_timestamps": recent + [now_ts],
            "daily_count": daily_count + 1,
            "last_action_timestamp": now_ts,
            "last_reset_date": today,
            "expires_at": expires_at,
        })
        return updated, document.version

    async def check_rate_limit(
        self,
        user_id: str,
        action_type: Union[ActionType, str],
        now: Optional[datetime] = None,
    ) -> RollingWindowLimitInfo:
        """
        Record one action for the user, or reject it.

        Raises RateLimitExceededError when over quota and
        RateLimitContentionError when concurrent writers keep winning.
        """
        action_type = ActionType(action_type)
        collection = action_type.collection

        for attempt in range(1, self.max_attempts + 1):
            current = now or datetime.now().astimezone()
            document = await self.store.get(collection, user_id)

            try:
                info, expected_version = self._admit(document, user_id, action_type, current)
            except RateLimitExceededError as e:
                self.logger.log_decision(
                    decision="rate_limited",
                    reason=e.message,
                    user_id=user_id,
                    action_type=action_type.value,
                    wait_minutes=e.wait_minutes,
                )
                raise

            written = await self.store.compare_and_set(
                collection,
                user_id,
                info.model_dump(mode="json"),
                expected_version,
            )
            if written:
                self.logger.log_action(
                    "rate_limit_check",
                    "passed",
                    user_id=user_id,
                    action_type=action_type.value,
                    used_in_window=len(info.action_timestamps),
                    daily_count=info.daily_count,
                )
                return info

            self.logger.log_decision(
                decision="retry_rate_limit_write",
                reason="concurrent update to quota record",
                user_id=user_id,
                attempt=attempt,
            )

        self.logger.log_error(
            f"Rate limit record for {user_id} kept changing after {self.max_attempts} attempts",
            error_type="rate_limit_contention",
            action_type=action_type.value,
        )
        raise RateLimitContentionError("Too many concurrent requests. Please try again in a moment.")

    async def get_status(
        self,
        user_id: str,
        action_type: Union[ActionType, str],
        now: Optional[datetime] = None,
    ) -> RateLimitStatus:
        """Current usage without recording an action."""
        action_type = ActionType(action_type)
        now = now or datetime.now().astimezone()
        now_ts = now.timestamp()
        hourly_limit = self.ceilings.hourly(action_type)
        daily_limit = self.ceilings.daily(action_type)

        document = await self.store.get(action_type.collection, user_id)
        if document is None:
            return RateLimitStatus(
                user_id=user_id,
                action_type=action_type,
                used_in_window=0,
                hourly_limit=hourly_limit,
                daily_count=0,
                daily_limit=daily_limit,
            )

        info = RollingWindowLimitInfo.model_validate(document.data)
        recent = self._window(info, now_ts)
        daily_count = info.daily_count if info.last_reset_date == now.date().isoformat() else 0
        wait_minutes = compute_wait_minutes(min(recent), now_ts) if len(recent) >= hourly_limit else None
        return RateLimitStatus(
            user_id=user_id,
            action_type=action_type,
            used_in_window=len(recent),
            hourly_limit=hourly_limit,
            daily_count=daily_count,
            daily_limit=daily_limit,
            wait_minutes=wait_minutes,
        )
