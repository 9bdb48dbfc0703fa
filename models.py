"""Subscription records and per-sweep result types."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

UNKNOWN_TITLE = "Unknown Class"


class User(BaseModel):
    """A subscriber, keyed internally by ``id`` and reached via ``external_id``."""

    id: int
    external_id: int
    username: str = ""
    created_at: datetime


class Subscription(BaseModel):
    """A resource code tracked by one user."""

    id: int
    user_id: int
    code: str
    title: str = ""
    active: bool = True
    created_at: datetime


class ProbeResult(BaseModel):
    """Current availability of one resource code as reported by a prober."""

    code: str
    seats: int = Field(default=0, ge=0)
    title: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @property
    def display_title(self) -> str:
        return self.title or UNKNOWN_TITLE


class OutcomeKind(str, Enum):
    UNAVAILABLE = "unavailable"
    NOTIFIED = "notified"
    ALREADY_NOTIFIED = "already_notified"
    PROBE_ERROR = "probe_error"
    LOOKUP_ERROR = "lookup_error"
    DELIVERY_ERROR = "delivery_error"


class SweepOutcome(BaseModel):
    """What happened to a single subscription during one sweep."""

    subscription: Subscription
    kind: OutcomeKind
    seats: Optional[int] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.kind in (
            OutcomeKind.PROBE_ERROR,
            OutcomeKind.LOOKUP_ERROR,
            OutcomeKind.DELIVERY_ERROR,
        )


class SweepReport(BaseModel):
    """Outcomes collected from every task of one sweep."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: list[SweepOutcome] = []

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.kind == kind)

    @property
    def notified_user_ids(self) -> set[int]:
        return {
            o.subscription.user_id
            for o in self.outcomes
            if o.kind == OutcomeKind.NOTIFIED
        }

    @property
    def failures(self) -> list[SweepOutcome]:
        return [o for o in self.outcomes if o.failed]


def format_availability_message(code: str, title: str, seats: int) -> str:
    """Notification body sent to a user when a tracked code has seats."""
    return (
        f"Good news! Class {code} ({title or UNKNOWN_TITLE}) "
        f"now has {seats} seat(s) available."
    )
