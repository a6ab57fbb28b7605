"""iCalendar serializer for Event records."""
import logging
from typing import Callable, List, Optional

from calendar_sync.models import Event
from ics_codec.timestamps import (
    current_time_millis,
    format_date,
    format_utc_date_time,
    shift_local_days,
)

logger = logging.getLogger(__name__)

PRODID = '-//Calendar Subscription Sync//EN'
VERSION = '2.0'
LINE_END = '\r\n'


def escape_text(text: str) -> str:
    """Apply iCalendar TEXT escaping."""
    return (
        text
        .replace('\\', '\\\\')
        .replace(',', '\\,')
        .replace(';', '\\;')
        .replace('\n', '\\n')
    )


def is_valid_ics(content: Optional[str]) -> bool:
    """Check that content carries the VCALENDAR envelope markers."""
    if not content:
        return False
    return 'BEGIN:VCALENDAR' in content and 'END:VCALENDAR' in content


class ICalendarSerializer:
    """Render events as an iCalendar document.

    Lines are not folded.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """
        Initialize the serializer.

        Args:
            clock: Callable returning epoch milliseconds, used for DTSTAMP
        """
        self.clock = clock or current_time_millis

    def serialize(self, events: List[Event]) -> str:
        """
        Serialize events into a single VCALENDAR document.

        Args:
            events: Events to export, emitted in the given order

        Returns:
            iCalendar text
        """
        dtstamp = format_utc_date_time(self.clock())
        lines = [
            'BEGIN:VCALENDAR',
            f'VERSION:{VERSION}',
            f'PRODID:{PRODID}',
            'CALSCALE:GREGORIAN',
            'METHOD:PUBLISH',
        ]

        for event in events:
            lines.extend(self._event_lines(event, dtstamp))

        lines.append('END:VCALENDAR')

        logger.info(f"Serialized {len(events)} events")
        return LINE_END.join(lines) + LINE_END

    def _event_lines(self, event: Event, dtstamp: str) -> List[str]:
        lines = [
            'BEGIN:VEVENT',
            f'UID:{event.id}',
            f'DTSTAMP:{dtstamp}',
        ]

        if event.is_all_day:
            lines.append(f'DTSTART;VALUE=DATE:{format_date(event.start_time)}')
            # Exclusive end date on the wire
            lines.append(f'DTEND;VALUE=DATE:{format_date(shift_local_days(event.end_time, 1))}')
        else:
            lines.append(f'DTSTART:{format_utc_date_time(event.start_time)}')
            lines.append(f'DTEND:{format_utc_date_time(event.end_time)}')

        lines.append(f'SUMMARY:{escape_text(event.title)}')

        if event.description and event.description.strip():
            lines.append(f'DESCRIPTION:{escape_text(event.description)}')
        if event.location and event.location.strip():
            lines.append(f'LOCATION:{escape_text(event.location)}')

        if event.reminder_minutes is not None and event.reminder_minutes >= 0:
            lines.extend([
                'BEGIN:VALARM',
                f'TRIGGER:-PT{event.reminder_minutes}M',
                'ACTION:DISPLAY',
                'DESCRIPTION:Reminder',
                'END:VALARM',
            ])

        lines.append('END:VEVENT')
        return lines


def export_to_ics(events: List[Event], clock: Optional[Callable[[], int]] = None) -> str:
    """Serialize events into iCalendar text."""
    return ICalendarSerializer(clock=clock).serialize(events)
