"""Reconciliation of canonical events against the event store."""
import logging
from typing import Any, Dict, Optional, Tuple

from processor.models import CanonicalEvent, MergeOutcome, StoreCapabilities
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class MergeEngine:
    """
    Decides insert, update or no-op for each incoming event.

    Lookup order is source UID, then canonical key, then the exact
    (title, start, venue) triple. The triple is consulted only while one
    of the identity lookups is unsupported by the store.

    Identities written during the run are remembered so that a second
    sighting in a later feed resolves to the same row even if the store's
    index has not caught up yet.
    """

    def __init__(self, store: DynamoDBManager, capabilities: StoreCapabilities):
        self.store = store
        self.capabilities = capabilities
        self._seen_uids: Dict[str, Tuple[str, str]] = {}
        self._seen_keys: Dict[str, Tuple[str, str]] = {}

    def merge(self, event: CanonicalEvent) -> MergeOutcome:
        """
        Merge one event into the store.

        Args:
            event: Canonicalized incoming event

        Returns:
            MergeOutcome describing the write performed

        Raises:
            botocore.exceptions.ClientError: If a store call fails
        """
        target, matched_by = self._find_target(event)

        if target is None:
            event_id = self.store.insert_event(event, self.capabilities)
            self._remember(event, event_id)
            logger.info(f"Inserted event: {event.title}")
            return MergeOutcome.INSERTED

        event_id = target['event_id']
        if target.get('content_hash') == event.content_hash:
            self._remember(event, event_id)
            logger.debug(f"No changes for event: {event.title} (matched by {matched_by})")
            return MergeOutcome.UNCHANGED

        backfill = self._backfill(event, target, matched_by)
        self.store.update_event(event_id, event, backfill=backfill)
        self._remember(event, event_id)
        logger.info(f"Updated event: {event.title} (matched by {matched_by})")
        return MergeOutcome.UPDATED

    def _find_target(self, event: CanonicalEvent) -> Tuple[Optional[Dict[str, Any]], str]:
        if event.source_uid:
            seen = self._seen_uids.get(event.source_uid)
            if seen:
                return self._seen_row(seen), 'source_uid'
            if self.capabilities.source_uid_lookup:
                row = self.store.find_by_source_uid(event.source_uid)
                if row:
                    return row, 'source_uid'

        seen = self._seen_keys.get(event.canonical_key)
        if seen:
            return self._seen_row(seen), 'canonical_key'
        if self.capabilities.canonical_key_lookup:
            row = self.store.find_by_canonical_key(event.canonical_key)
            if row:
                return row, 'canonical_key'

        if self.capabilities.degraded:
            row = self.store.find_by_title_start_venue(event.title, event.start_at, event.venue)
            if row:
                return row, 'title_start_venue'

        return None, ''

    @staticmethod
    def _seen_row(seen: Tuple[str, str]) -> Dict[str, Any]:
        event_id, content_hash = seen
        return {'event_id': event_id, 'content_hash': content_hash, '_seen': True}

    def _remember(self, event: CanonicalEvent, event_id: str) -> None:
        entry = (event_id, event.content_hash)
        if event.source_uid:
            self._seen_uids[event.source_uid] = entry
        known = self._seen_keys.get(event.canonical_key)
        if known is None or known[0] == event_id:
            self._seen_keys[event.canonical_key] = entry

    def _backfill(
        self,
        event: CanonicalEvent,
        target: Dict[str, Any],
        matched_by: str
    ) -> Dict[str, str]:
        """
        Identity attributes the matched row lacks and the store can index.

        A key is only backfilled when its own lookup already came back
        empty, so no second row can end up holding it.
        """
        if target.get('_seen'):
            return {}
        backfill = {}
        if (
            self.capabilities.source_uid_lookup
            and event.source_uid
            and not target.get('source_uid')
        ):
            backfill['source_uid'] = event.source_uid
        if (
            self.capabilities.canonical_key_lookup
            and matched_by == 'title_start_venue'
            and not target.get('canonical_key')
        ):
            backfill['canonical_key'] = event.canonical_key
        return backfill
