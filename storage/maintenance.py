"""Cleanup of duplicate rows left by imports that predate identity keys."""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


def duplicate_score(item: Dict[str, Any]) -> Tuple[int, str]:
    """Rank a row within its duplicate group; higher is kept."""
    score = 0
    if item.get('image_url'):
        score += 100
    tickets_url = item.get('tickets_url') or ''
    if tickets_url and not any(char in tickets_url for char in '<>"'):
        score += 50
    return score, item.get('created_at', '')


def group_duplicates(items: List[Dict[str, Any]]) -> Dict[Tuple[str, str, str], List[Dict[str, Any]]]:
    """Group rows sharing title, start and venue; singleton groups are dropped."""
    groups = defaultdict(list)
    for item in items:
        key = (item.get('title', ''), item.get('start_at', ''), item.get('venue', ''))
        groups[key].append(item)
    return {key: rows for key, rows in groups.items() if len(rows) > 1}


def cleanup_duplicates(store: DynamoDBManager) -> int:
    """
    Keep the best row of every duplicate group and delete the rest.

    Args:
        store: Event store

    Returns:
        Number of rows deleted
    """
    logger.info("Starting duplicate cleanup")
    groups = group_duplicates(list(store.get_all_events().values()))

    deleted = 0
    for (title, start_at, venue), rows in groups.items():
        logger.info(f"Found {len(rows)} duplicates for: {title}|{start_at}|{venue}")
        rows.sort(key=duplicate_score, reverse=True)
        for row in rows[1:]:
            try:
                store.delete_event(row['event_id'])
                deleted += 1
                logger.info(f"Deleted duplicate: {title} ({row['event_id']})")
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to delete duplicate {row['event_id']}: {e}")
                continue

    logger.info(f"Cleaned up {deleted} duplicate events")
    return deleted
