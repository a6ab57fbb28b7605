"""Column layout for overlapping timed events on a day timeline."""
from typing import List

from calendar_sync.models import Event, EventLayout
from ics_codec.timestamps import MILLIS_PER_DAY, MILLIS_PER_HOUR

HOURS_PER_DAY = 24


def calculate_event_layouts(events: List[Event], day_start: int) -> List[EventLayout]:
    """
    Place a day's timed events into side-by-side columns.

    Events are taken in start order (ties keep input order) and each goes
    into the first column whose last event ends at or before its start;
    otherwise a new column opens. Every layout shares the same column count,
    even for events that only overlap some of the columns.

    Args:
        events: Non all-day events of the day
        day_start: Epoch milliseconds of the day's midnight

    Returns:
        One EventLayout per input event, in start order
    """
    if not events:
        return []

    ordered = sorted(events, key=lambda event: event.start_time)
    columns: List[Event] = []
    placements = []

    for event in ordered:
        for index, last_event in enumerate(columns):
            if last_event.end_time <= event.start_time:
                columns[index] = event
                placements.append((event, index))
                break
        else:
            columns.append(event)
            placements.append((event, len(columns) - 1))

    column_count = len(columns)
    return [
        EventLayout(
            event=event,
            column_index=index,
            column_count=column_count,
            start_fraction=max(0.0, (event.start_time - day_start) / MILLIS_PER_HOUR),
            end_fraction=min(float(HOURS_PER_DAY), (event.end_time - day_start) / MILLIS_PER_HOUR)
        )
        for event, index in placements
    ]


def layout_day(events: List[Event], day_start: int) -> List[EventLayout]:
    """Lay out the timed events that overlap the day starting at ``day_start``."""
    day_end = day_start + MILLIS_PER_DAY
    timed = [
        event for event in events
        if not event.is_all_day
        and event.start_time < day_end
        and event.end_time > day_start
    ]
    return calculate_event_layouts(timed, day_start)
