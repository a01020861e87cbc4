"""
Quota models for the rolling-window rate limiter.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ActionType(str, Enum):
    """Action being rate limited."""
    IMPORT = "import"
    CONVERSION = "conversion"

    @property
    def collection(self) -> str:
        """Document-store collection holding this action's records."""
        if self is ActionType.IMPORT:
            return "userImportLimits"
        return "userConversionLimits"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class RateLimitCeilings(BaseModel):
    """Hourly and daily ceilings for one environment."""
    imports_per_hour: int = Field(ge=1)
    conversions_per_hour: int = Field(ge=1)
    daily_imports: int = Field(ge=1)
    daily_conversions: int = Field(ge=1)

    def hourly(self, action_type: ActionType) -> int:
        if action_type is ActionType.IMPORT:
            return self.imports_per_hour
        return self.conversions_per_hour

    def daily(self, action_type: ActionType) -> int:
        if action_type is ActionType.IMPORT:
            return self.daily_imports
        return self.daily_conversions


class RollingWindowLimitInfo(BaseModel):
    """Per-user, per-action quota record."""
    user_id: str
    action_type: ActionType
    action_timestamps: List[float] = Field(default_factory=list)  # epoch seconds, oldest first
    daily_count: int = 0
    last_action_timestamp: Optional[float] = None
    last_reset_date: str = ""
    created_at: datetime
    expires_at: datetime


class RateLimitStatus(BaseModel):
    """Read-only view of a user's current usage."""
    user_id: str
    action_type: ActionType
    used_in_window: int
    hourly_limit: int
    daily_count: int
    daily_limit: int
    wait_minutes: Optional[int] = None
