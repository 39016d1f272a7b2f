"""Category assignment for imported events."""
import re
from typing import Iterable, List, Pattern, Tuple

from processor.models import CATEGORIES

DEFAULT_CATEGORY = 'other'

# Evaluated top to bottom against the lowercased title and description.
# The order decides ties ("live comedy night" is a concert), so changing it
# changes classification.
CATEGORY_RULES: List[Tuple[Pattern, str]] = [
    (re.compile(r'concert|live|tour|singer|band|diljit|atif|arijit'), 'concert'),
    (re.compile(r'club|dj|night|party|bollywood night|desi night|bhangra'), 'club'),
    (re.compile(r'comedy|comic|stand ?up'), 'comedy'),
    (re.compile(r'festival|mela|fair'), 'festival'),
]


def category_from_tags(tags: Iterable[str]) -> str:
    """First category, in priority order, that appears verbatim as a tag."""
    tag_set = set(tags)
    for category in CATEGORIES:
        if category != DEFAULT_CATEGORY and category in tag_set:
            return category
    return ''


def classify(tags: Iterable[str], title: str, description: str = '') -> str:
    """
    Assign exactly one category to an event.

    Args:
        tags: Lowercase tags parsed from the description
        title: Event title
        description: Cleaned description text

    Returns:
        One of CATEGORIES
    """
    tagged = category_from_tags(tags)
    if tagged:
        return tagged

    combined = f"{title or ''} {description or ''}".lower()
    for pattern, category in CATEGORY_RULES:
        if pattern.search(combined):
            return category
    return DEFAULT_CATEGORY
