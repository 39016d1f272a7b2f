"""Data models for calendar feed ingestion."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Set


CATEGORIES = ('concert', 'club', 'comedy', 'festival', 'other')

STATUS_UPCOMING = 'upcoming'
STATUS_PAST = 'past'


@dataclass
class RawEvent:
    """One VEVENT block decoded from a calendar feed."""
    title: str
    start_at: datetime
    end_at: datetime
    is_all_day_hint: bool
    location: Optional[str] = None
    description: Optional[str] = None
    organizer_hint: Optional[str] = None
    source_uid: Optional[str] = None
    raw_timezone_hint: Optional[str] = None


@dataclass
class ParsedFields:
    """Structured data pulled out of a free-text description."""
    tickets_url: Optional[str] = None
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    organizer_override: Optional[str] = None
    price_from: Optional[Decimal] = None
    featured: bool = False
    urls: List[str] = field(default_factory=list)


@dataclass
class CanonicalEvent:
    """Normalized event as persisted in the store."""
    source_uid: Optional[str]
    canonical_key: str
    content_hash: str
    title: str
    clean_description: Optional[str]
    category: str
    start_at: datetime
    end_at: datetime
    timezone: str
    is_all_day: bool
    venue: Optional[str]
    address: Optional[str]
    city: str
    organizer: Optional[str]
    tickets_url: Optional[str] = None
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    price_from: Optional[Decimal] = None
    tags: List[str] = field(default_factory=list)
    featured: bool = False
    status: str = STATUS_UPCOMING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class StoreCapabilities:
    """Lookups the store supports for this run, resolved once by a probe."""
    source_uid_lookup: bool
    canonical_key_lookup: bool

    @property
    def degraded(self) -> bool:
        return not (self.source_uid_lookup and self.canonical_key_lookup)


class MergeOutcome(str, Enum):
    INSERTED = 'inserted'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'


@dataclass
class RunSummary:
    """Counters aggregated over one pipeline run."""
    feeds_processed: int = 0
    feeds_failed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    marked_past: int = 0
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: MergeOutcome) -> None:
        if outcome is MergeOutcome.INSERTED:
            self.inserted += 1
        elif outcome is MergeOutcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1
