"""iCalendar parser producing Event records."""
import logging
import re
import uuid
from enum import Enum
from typing import BinaryIO, Dict, Iterable, List, Optional

from calendar_sync.models import Event
from ics_codec.timestamps import (
    MILLIS_PER_HOUR,
    is_date_only,
    parse_date_time,
    shift_local_days,
)
from ics_codec.unfolder import unfold_lines

logger = logging.getLogger(__name__)

HOURS_PATTERN = re.compile(r'(\d+)H')
MINUTES_PATTERN = re.compile(r'(\d+)M')
SECONDS_PATTERN = re.compile(r'(\d+)S')
DAYS_PATTERN = re.compile(r'(\d+)D')


class ParserState(Enum):
    """Position of the parser within the document."""
    OUTSIDE = 'outside'
    IN_EVENT = 'in_event'
    IN_EVENT_IN_ALARM = 'in_event_in_alarm'


def base_name(key: str) -> str:
    """Property name without its parameters (``DTSTART;VALUE=DATE`` -> ``DTSTART``)."""
    return key.split(';', 1)[0]


def unescape_text(text: str) -> str:
    """Reverse iCalendar TEXT escaping."""
    return (
        text
        .replace('\\n', '\n')
        .replace('\\N', '\n')
        .replace('\\,', ',')
        .replace('\\;', ';')
        .replace('\\\\', '\\')
    )


def parse_trigger(trigger: str) -> Optional[int]:
    """
    Parse a VALARM TRIGGER duration into reminder minutes.

    Accepts ``[+-]PT#H#M#S`` and ``[+-]P#D`` forms. The sign is ignored.

    Args:
        trigger: Duration value, e.g. "-PT15M" or "-P1D"

    Returns:
        Minutes before start, or None when the duration is not positive
    """
    value = trigger.strip()
    if value.startswith(('-', '+')):
        value = value[1:]

    minutes = 0

    if value.startswith('PT'):
        time_part = value[2:]
        hours = HOURS_PATTERN.search(time_part)
        mins = MINUTES_PATTERN.search(time_part)
        secs = SECONDS_PATTERN.search(time_part)
        if hours:
            minutes += int(hours.group(1)) * 60
        if mins:
            minutes += int(mins.group(1))
        if secs:
            minutes += int(secs.group(1)) // 60
    elif value.startswith('P'):
        days = DAYS_PATTERN.search(value)
        if days:
            minutes += int(days.group(1)) * 24 * 60

    return minutes if minutes > 0 else None


class ICalendarParser:
    """Single-pass parser turning unfolded iCalendar lines into events."""

    def parse_lines(
        self,
        lines: Iterable[str],
        source_tag: Optional[str] = None
    ) -> List[Event]:
        """
        Parse logical (already unfolded) lines into events.

        VEVENT blocks that cannot produce an event are dropped without
        affecting their siblings.

        Args:
            lines: Unfolded iCalendar lines
            source_tag: Subscription URL to stamp on every event, if any

        Returns:
            List of Event objects in document order
        """
        events = []
        state = ParserState.OUTSIDE
        properties: Dict[str, str] = {}
        reminder_minutes: Optional[int] = None

        for raw_line in lines:
            line = raw_line.strip()

            if line == 'BEGIN:VEVENT':
                if state is not ParserState.OUTSIDE:
                    logger.warning("Unterminated VEVENT block discarded")
                state = ParserState.IN_EVENT
                properties = {}
                reminder_minutes = None

            elif line == 'END:VEVENT':
                if state is not ParserState.OUTSIDE:
                    event = self._build_event(properties, reminder_minutes, source_tag)
                    if event:
                        events.append(event)
                state = ParserState.OUTSIDE

            elif state is ParserState.OUTSIDE:
                continue

            elif line == 'BEGIN:VALARM':
                state = ParserState.IN_EVENT_IN_ALARM

            elif line == 'END:VALARM':
                state = ParserState.IN_EVENT

            elif state is ParserState.IN_EVENT_IN_ALARM:
                key, value = self._split_property(line)
                if key is not None and base_name(key) == 'TRIGGER':
                    reminder_minutes = parse_trigger(value)

            else:
                key, value = self._split_property(line)
                if key is not None:
                    properties[key] = value

        logger.debug(f"Parsed {len(events)} events")
        return events

    def parse(self, content: str, source_tag: Optional[str] = None) -> List[Event]:
        """Unfold and parse a complete iCalendar document."""
        return self.parse_lines(unfold_lines(content), source_tag=source_tag)

    @staticmethod
    def _split_property(line: str) -> tuple:
        colon_index = line.find(':')
        if colon_index <= 0:
            return None, None
        return line[:colon_index], line[colon_index + 1:]

    @staticmethod
    def _find_property(properties: Dict[str, str], name: str) -> Optional[tuple]:
        """Return the first (key, value) whose base name equals ``name``."""
        for key, value in properties.items():
            if base_name(key) == name:
                return key, value
        return None

    def _build_event(
        self,
        properties: Dict[str, str],
        reminder_minutes: Optional[int],
        source_tag: Optional[str]
    ) -> Optional[Event]:
        """
        Materialize an event from the properties of one VEVENT block.

        Args:
            properties: Property values keyed by full left-hand side
            reminder_minutes: Minutes parsed from the block's VALARM, if any
            source_tag: Subscription URL, or None for local imports

        Returns:
            Event object or None if the block is unusable
        """
        summary = self._find_property(properties, 'SUMMARY')
        if summary is None:
            logger.warning("Dropping VEVENT without SUMMARY")
            return None

        title = unescape_text(summary[1])
        if not title.strip():
            logger.warning("Dropping VEVENT with blank SUMMARY")
            return None

        dtstart = self._find_property(properties, 'DTSTART')
        start_time = parse_date_time(*dtstart) if dtstart else None
        if start_time is None:
            logger.warning(f"Dropping VEVENT '{title}': missing or invalid DTSTART")
            return None

        is_all_day = is_date_only(dtstart[0])

        dtend = self._find_property(properties, 'DTEND')
        end_time = parse_date_time(*dtend) if dtend else None

        if is_all_day:
            if end_time is None:
                end_time = start_time
            else:
                # Wire format end dates are exclusive
                end_time = max(shift_local_days(end_time, -1), start_time)
        elif end_time is None or end_time < start_time:
            end_time = start_time + MILLIS_PER_HOUR

        uid = self._find_property(properties, 'UID')
        event_id = uid[1].strip() if uid and uid[1].strip() else str(uuid.uuid4())

        description = self._find_property(properties, 'DESCRIPTION')
        location = self._find_property(properties, 'LOCATION')

        return Event(
            id=event_id,
            title=title,
            description=unescape_text(description[1]) if description else None,
            location=unescape_text(location[1]) if location else None,
            start_time=start_time,
            end_time=end_time,
            is_all_day=is_all_day,
            reminder_minutes=reminder_minutes,
            color=None,
            source_tag=source_tag
        )


def parse_ics(content: str, source_tag: Optional[str] = None) -> List[Event]:
    """Parse iCalendar text into events."""
    return ICalendarParser().parse(content, source_tag=source_tag)


def parse_ics_stream(stream: BinaryIO, source_tag: Optional[str] = None) -> List[Event]:
    """Parse a UTF-8 encoded iCalendar byte stream into events."""
    content = stream.read().decode('utf-8', errors='replace')
    return parse_ics(content, source_tag=source_tag)
