"""Data models for calendar subscription sync."""
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Event:
    """Calendar event, either authored locally or imported from a feed."""
    id: str
    title: str
    start_time: int
    end_time: int
    description: Optional[str] = None
    location: Optional[str] = None
    is_all_day: bool = False
    reminder_minutes: Optional[int] = None
    color: Optional[str] = None
    source_tag: Optional[str] = None

    @property
    def is_from_subscription(self) -> bool:
        return self.source_tag is not None


@dataclass
class Subscription:
    """Remote iCalendar feed the user subscribed to."""
    id: str
    name: str
    url: str
    color: Optional[str] = None
    enabled: bool = True
    last_sync_time: Optional[int] = None
    created_at: int = 0


@dataclass
class SyncOutcome:
    """Result of syncing a single source."""
    success: bool
    event_count: int = 0
    error: Optional[str] = None


@dataclass
class AggregateSyncResult:
    """Result of syncing every enabled subscription."""
    overall_success: bool
    succeeded_count: int
    failed_count: int
    errors: list[str] = field(default_factory=list)


@dataclass
class EventLayout:
    """Placement of a timed event on a day timeline.

    Fractions are hours of the day, clamped to the visible day.
    """
    event: Event
    column_index: int
    column_count: int
    start_fraction: float
    end_fraction: float

    @property
    def left(self) -> float:
        return self.column_index / self.column_count

    @property
    def width(self) -> float:
        return 1 / self.column_count
