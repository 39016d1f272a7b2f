"""Event processor turning raw feed events into canonical records."""
import hashlib
import json
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.classifier import classify
from processor.description_parser import DescriptionParser
from processor.models import (
    STATUS_PAST,
    STATUS_UPCOMING,
    CanonicalEvent,
    RawEvent,
)

logger = logging.getLogger(__name__)

KEY_SEPARATOR = '-'
NO_VENUE = 'tba'
UTC_ALIASES = frozenset({'utc', 'etc/utc', 'gmt', 'etc/gmt', 'z', 'zulu'})

# Pacific-time spellings feeds use for the local zone
LOCAL_ZONE_ALIAS_RE = re.compile(
    r'vancouver|^(us|canada)/pacific$|^pst8pdt$|pacific (standard |daylight )?time|\bp[sd]t\b',
    re.IGNORECASE
)

_NON_ALNUM_RE = re.compile(r'[\W_]+', re.UNICODE)


def normalize_key_part(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one separator, trim."""
    return _NON_ALNUM_RE.sub(KEY_SEPARATOR, value.lower()).strip(KEY_SEPARATOR)


def split_location(location: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "Venue, street, city" into venue and the remaining address."""
    if not location:
        return None, None
    parts = [part.strip() for part in location.split(',')]
    venue = parts[0] or None
    address = ', '.join(part for part in parts[1:] if part) or None
    return venue, address


class EventProcessor:
    """Canonicalizer: builds CanonicalEvent records and their identity keys."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 5000

    def __init__(
        self,
        timezone: str = 'America/Vancouver',
        city: str = 'Vancouver, BC',
        past_grace: timedelta = timedelta(hours=24),
        description_parser: Optional[DescriptionParser] = None
    ):
        """
        Initialize the processor.

        Args:
            timezone: Deployment IANA timezone
            city: City written on every event
            past_grace: How far behind now an event must start to be past
            description_parser: Extractor for description directives
        """
        self.timezone_name = timezone
        self.timezone = ZoneInfo(timezone)
        self.city = city
        self.past_grace = past_grace
        self.description_parser = description_parser or DescriptionParser()

    def process_events(self, raw_events: List[RawEvent], now: datetime) -> List[CanonicalEvent]:
        """
        Process a batch of raw events.

        Args:
            raw_events: RawEvent objects from the calendar parser
            now: Reference time used to derive the initial status

        Returns:
            List of CanonicalEvent objects
        """
        processed_events = []

        for event in raw_events:
            try:
                processed_events.append(self.process_event(event, now))
            except Exception as e:
                logger.warning(f"Failed to process event '{event.title}': {e}")
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def process_event(self, event: RawEvent, now: datetime) -> CanonicalEvent:
        """Build the canonical record for one raw event. Performs no I/O."""
        fields, clean_description = self.description_parser.parse(event.description)

        title = event.title.strip()[:self.MAX_TITLE_LENGTH]
        if clean_description:
            clean_description = clean_description[:self.MAX_DESCRIPTION_LENGTH]

        venue, address = split_location(event.location)
        organizer = fields.organizer_override or event.organizer_hint
        tags = sorted(fields.tags)

        end_at = event.end_at if event.end_at >= event.start_at else event.start_at

        return CanonicalEvent(
            source_uid=event.source_uid,
            canonical_key=self.generate_canonical_key(
                title, event.start_at, event.is_all_day_hint, venue
            ),
            content_hash=self.generate_content_hash(
                description=event.description,
                organizer=organizer,
                tickets_url=fields.tickets_url,
                image_url=fields.image_url,
                tags=tags
            ),
            title=title,
            clean_description=clean_description,
            category=classify(tags, title, clean_description or ''),
            start_at=event.start_at,
            end_at=end_at,
            timezone=self.resolve_timezone(event.raw_timezone_hint),
            is_all_day=event.is_all_day_hint,
            venue=venue,
            address=address,
            city=self.city,
            organizer=organizer,
            tickets_url=fields.tickets_url,
            source_url=fields.source_url,
            image_url=fields.image_url,
            price_from=fields.price_from,
            tags=tags,
            featured=fields.featured,
            status=self.derive_status(event.start_at, now),
            created_at=now,
            updated_at=now
        )

    def generate_canonical_key(
        self,
        title: str,
        start_at: datetime,
        is_all_day: bool,
        venue: Optional[str]
    ) -> str:
        """
        Fingerprint for events without a stable feed UID.

        Args:
            title: Event title
            start_at: Aware start instant
            is_all_day: Whether only the local date identifies the start
            venue: Venue name or None

        Returns:
            "title|date[-time]|venue" with every part normalized
        """
        local_start = start_at.astimezone(self.timezone)
        when = local_start.strftime('%Y-%m-%d' if is_all_day else '%Y-%m-%d %H:%M')
        return '|'.join([
            normalize_key_part(title),
            normalize_key_part(when),
            normalize_key_part(venue or '') or NO_VENUE,
        ])

    @staticmethod
    def generate_content_hash(
        description: Optional[str],
        organizer: Optional[str],
        tickets_url: Optional[str],
        image_url: Optional[str],
        tags: List[str]
    ) -> str:
        """
        Hash of the fields whose change should trigger an update.

        Identity and timing fields are left out so a re-published feed does
        not register as a change.

        Returns:
            SHA-1 hex digest
        """
        composite = '|'.join([
            description or '',
            organizer or '',
            tickets_url or '',
            image_url or '',
            json.dumps(sorted(tags)),
        ])
        return hashlib.sha1(composite.encode('utf-8')).hexdigest()

    def resolve_timezone(self, hint: Optional[str]) -> str:
        """Map a feed timezone hint to a valid IANA name, else the default."""
        if not hint or hint.strip().lower() in UTC_ALIASES:
            return self.timezone_name
        if LOCAL_ZONE_ALIAS_RE.search(hint.strip()):
            return self.timezone_name
        try:
            ZoneInfo(hint.strip())
        except (ZoneInfoNotFoundError, ValueError):
            return self.timezone_name
        return hint.strip()

    def derive_status(self, start_at: datetime, now: datetime) -> str:
        if start_at < now - self.past_grace:
            return STATUS_PAST
        return STATUS_UPCOMING
