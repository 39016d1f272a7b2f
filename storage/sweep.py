"""Finalization pass marking started events as past."""
import logging
from datetime import datetime, timedelta

from botocore.exceptions import BotoCoreError, ClientError

from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)

DEFAULT_GRACE = timedelta(hours=24)


def sweep_past_events(
    store: DynamoDBManager,
    now: datetime,
    grace: timedelta = DEFAULT_GRACE
) -> int:
    """
    Mark every stored event that started more than ``grace`` ago as past.

    Applies to all rows regardless of which run created them; rows already
    marked past are not selected, so repeated sweeps are no-ops.

    Args:
        store: Event store
        now: Reference time
        grace: How long after its start an event stays upcoming

    Returns:
        Number of events transitioned to past
    """
    cutoff = now - grace
    candidates = store.find_sweepable(cutoff)
    logger.info(f"Sweep found {len(candidates)} events that started before {cutoff}")

    marked = 0
    for item in candidates:
        try:
            store.mark_past(item['event_id'], now)
            marked += 1
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to mark event {item['event_id']} as past: {e}")
            continue

    logger.info(f"Marked {marked} events as past")
    return marked
