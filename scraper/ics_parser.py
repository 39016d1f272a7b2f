"""iCalendar feed parser producing RawEvent records."""
import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Iterator, Optional
from zoneinfo import ZoneInfo

from icalendar import Calendar

from processor.models import RawEvent

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=3)
ALL_DAY_DURATION = timedelta(days=1)
UNTITLED = 'Untitled Event'


class ICSParseError(Exception):
    """Raised when a feed document cannot be decoded as a calendar."""


class ICSCalendarParser:
    """Decodes calendar text into RawEvent records, one per VEVENT block."""

    def __init__(self, default_timezone: str = 'America/Vancouver'):
        """
        Initialize the parser.

        Args:
            default_timezone: IANA zone used for floating times, bare dates
                and the local-midnight all-day heuristic
        """
        self.timezone = ZoneInfo(default_timezone)
        self.skipped = 0

    def parse(self, ics_text: str) -> Iterator[RawEvent]:
        """
        Parse a calendar document.

        Decoding the document is eager so that a broken feed fails before
        any event is yielded; the events themselves are produced lazily.

        Args:
            ics_text: Raw calendar text

        Returns:
            Iterator of RawEvent; blocks without a usable start are dropped
            and counted in ``self.skipped``

        Raises:
            ICSParseError: If the document is not a calendar
        """
        calendar = self._load_calendar(ics_text)
        self.skipped = 0
        return self._iter_events(calendar)

    def _load_calendar(self, ics_text: str) -> Calendar:
        if not ics_text or 'BEGIN:VCALENDAR' not in ics_text:
            raise ICSParseError('Document does not contain a VCALENDAR')
        try:
            return Calendar.from_ical(ics_text)
        except (ValueError, IndexError, KeyError) as e:
            raise ICSParseError(f'Unable to decode calendar: {e}') from e

    def _iter_events(self, calendar: Calendar) -> Iterator[RawEvent]:
        for component in calendar.walk('VEVENT'):
            try:
                raw_event = self._parse_component(component)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed VEVENT: {e}")
                raw_event = None

            if raw_event is None:
                self.skipped += 1
                continue
            yield raw_event

        if self.skipped:
            logger.info(f"Dropped {self.skipped} incomplete VEVENT blocks")

    def _parse_component(self, component: Any) -> Optional[RawEvent]:
        """
        Parse a single VEVENT component.

        Args:
            component: icalendar VEVENT component

        Returns:
            RawEvent or None if the block has no start
        """
        dtstart = component.get('DTSTART')
        if dtstart is None:
            logger.warning(
                f"VEVENT {component.get('UID', '<no uid>')} missing DTSTART, skipping"
            )
            return None

        start_value = dtstart.dt
        is_date_only = not isinstance(start_value, datetime)
        start_at = self._to_aware(start_value)

        end_at = None
        dtend = component.get('DTEND')
        if dtend is not None:
            end_at = self._to_aware(dtend.dt)
        else:
            duration = component.get('DURATION')
            if duration is not None and isinstance(duration.dt, timedelta):
                end_at = start_at + duration.dt

        if end_at is None:
            end_at = start_at + (ALL_DAY_DURATION if is_date_only else DEFAULT_DURATION)
        elif end_at < start_at:
            logger.warning(
                f"VEVENT {component.get('UID', '<no uid>')} ends before it starts, "
                f"using default duration"
            )
            end_at = start_at + DEFAULT_DURATION

        is_all_day = is_date_only or self._spans_whole_days(start_at, end_at)

        title = str(component.get('SUMMARY') or '').strip() or UNTITLED
        uid = component.get('UID')
        source_uid = str(uid).strip() if uid is not None else ''

        return RawEvent(
            title=title,
            start_at=start_at,
            end_at=end_at,
            is_all_day_hint=is_all_day,
            location=self._text(component.get('LOCATION')),
            description=self._text(component.get('DESCRIPTION')),
            organizer_hint=self._organizer(component.get('ORGANIZER')),
            source_uid=source_uid or None,
            raw_timezone_hint=self._timezone_hint(dtstart)
        )

    def _to_aware(self, value: date) -> datetime:
        """Convert an iCalendar date or datetime to an aware datetime."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=self.timezone)
            return value
        return datetime.combine(value, time.min, tzinfo=self.timezone)

    def _spans_whole_days(self, start_at: datetime, end_at: datetime) -> bool:
        """
        Detect all-day events in feeds that do not mark them explicitly.

        Both ends must fall on local midnight and the span must cover at
        least one day. Wall-clock comparison keeps DST transition days
        from breaking the check.
        """
        local_start = start_at.astimezone(self.timezone)
        local_end = end_at.astimezone(self.timezone)
        return (
            self._is_midnight(local_start)
            and self._is_midnight(local_end)
            and local_end.date() > local_start.date()
        )

    @staticmethod
    def _is_midnight(value: datetime) -> bool:
        return (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0)

    @staticmethod
    def _text(prop: Any) -> Optional[str]:
        if prop is None:
            return None
        text = str(prop).strip()
        return text or None

    @staticmethod
    def _organizer(prop: Any) -> Optional[str]:
        """Prefer the CN parameter, fall back to the address without mailto:."""
        if prop is None:
            return None
        params = getattr(prop, 'params', None) or {}
        common_name = params.get('CN')
        if common_name:
            return str(common_name).strip().strip('"') or None
        value = str(prop).strip()
        if value.lower().startswith('mailto:'):
            value = value[len('mailto:'):]
        return value or None

    @staticmethod
    def _timezone_hint(dtstart: Any) -> Optional[str]:
        params = getattr(dtstart, 'params', None) or {}
        tzid = params.get('TZID')
        if tzid:
            return str(tzid)
        zone: Optional[tzinfo] = getattr(dtstart.dt, 'tzinfo', None)
        if zone is None:
            return None
        return getattr(zone, 'key', None) or getattr(zone, 'zone', None) or str(zone)
