"""Extraction of directives and links embedded in event descriptions.

Organizers publish extra data through the only free-text field calendar
feeds carry, one ``key: value`` directive per line::

    Join us for the season opener!
    Tickets: https://www.eventbrite.ca/e/123
    Image: https://cdn.example.com/poster.jpg
    Tags: concert, live
    PriceFrom: 25.00
    Featured: yes

Recognized keys are tickets, source, image, tags, organizer, pricefrom and
featured (case-insensitive). When no tickets or image directive is given,
the URLs found anywhere in the text are used as fallbacks.
"""
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from bs4 import BeautifulSoup

from processor.models import ParsedFields

logger = logging.getLogger(__name__)

DIRECTIVE_RE = re.compile(
    r'^(tickets|source|image|tags|organizer|pricefrom|featured)\s*:\s*(.*?)\s*$',
    re.IGNORECASE
)
URL_RE = re.compile(r'https?://[^\s"\'<>]+', re.IGNORECASE)
MARKUP_RE = re.compile(r'<[a-zA-Z/!]|&#?[a-zA-Z0-9]+;')
PRICE_RE = re.compile(r'^\$?\s*(\d+(?:\.\d+)?)$')
INLINE_SPACE_RE = re.compile(r'[ \t\f\v\u00a0]+')
BLANK_RUN_RE = re.compile(r'\n{3,}')

TRUTHY = frozenset({'yes', 'y', 'true', '1', 'on'})
FALSY = frozenset({'no', 'n', 'false', '0', 'off'})

BLOCK_TAGS = ['p', 'div', 'li', 'ul', 'ol', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'tr']

# Ordered (name, pattern) tables; the first rule with a matching URL wins.
TICKET_VENDOR_RULES: List[Tuple[str, Pattern]] = [
    ('eventbrite', re.compile(r'^https?://(?:[^/]*\.)?eventbrite\.[a-z.]+/', re.I)),
    ('ticketmaster', re.compile(r'^https?://(?:[^/]*\.)?ticketmaster\.[a-z.]+/', re.I)),
    ('showpass', re.compile(r'^https?://(?:[^/]*\.)?showpass\.com/', re.I)),
    ('universe', re.compile(r'^https?://(?:[^/]*\.)?universe\.com/', re.I)),
    ('dice', re.compile(r'^https?://(?:[^/]*\.)?dice\.fm/', re.I)),
    ('tixr', re.compile(r'^https?://(?:[^/]*\.)?tixr\.com/', re.I)),
    ('ticketweb', re.compile(r'^https?://(?:[^/]*\.)?ticketweb\.[a-z.]+/', re.I)),
    ('seetickets', re.compile(r'^https?://(?:[^/]*\.)?seetickets\.[a-z.]+/', re.I)),
]

IMAGE_URL_RULES: List[Tuple[str, Pattern]] = [
    ('file-extension', re.compile(r'\.(?:jpe?g|png|gif|webp)(?:[?#]|$)', re.I)),
    ('eventbrite-cdn', re.compile(r'^https?://(?:img|cdn)\.evbuc\.com/', re.I)),
    ('cloudinary', re.compile(r'^https?://(?:[^/]*\.)?cloudinary\.com/', re.I)),
    ('imgur', re.compile(r'^https?://(?:[^/]*\.)?imgur\.com/', re.I)),
    ('unsplash', re.compile(r'^https?://images\.unsplash\.com/', re.I)),
    ('pexels', re.compile(r'^https?://(?:[^/]*\.)?pexels\.com/', re.I)),
]


def first_matching_url(urls: List[str], rules: List[Tuple[str, Pattern]]) -> Optional[str]:
    """Return the first URL matched by the highest-priority rule."""
    for _name, pattern in rules:
        for url in urls:
            if pattern.search(url):
                return url
    return None


def clean_url(url: str) -> str:
    """Drop sentence punctuation and unbalanced closing brackets."""
    url = url.rstrip('.,;:!?')
    while url.endswith(')') and url.count(')') > url.count('('):
        url = url[:-1].rstrip('.,;:!?')
    return url


def extract_urls(text: str) -> List[str]:
    """Every absolute URL in ``text``, in order of appearance, deduplicated."""
    seen = []
    for match in URL_RE.findall(text):
        url = clean_url(match)
        if url not in seen:
            seen.append(url)
    return seen


def markup_to_text(description: str) -> str:
    """
    Convert an HTML-ish description to plain text with line breaks.

    Line-level elements become newlines, link targets are kept next to the
    link text so they remain visible to URL extraction, and entities are
    decoded.
    """
    text = description.replace('\r\n', '\n').replace('\r', '\n')
    if not MARKUP_RE.search(text):
        return text

    soup = BeautifulSoup(text, 'html.parser')
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for link in soup.find_all('a', href=True):
        href = link['href'].strip()
        label = link.get_text().strip()
        if not href.lower().startswith(('http://', 'https://')) or href in label:
            link.replace_with(label)
        elif label:
            link.replace_with(f'{label} {href}')
        else:
            link.replace_with(href)
    for block in soup.find_all(BLOCK_TAGS):
        block.insert_before('\n')
        block.insert_after('\n')
    return soup.get_text()


def normalize_lines(text: str) -> List[str]:
    return [INLINE_SPACE_RE.sub(' ', line).strip() for line in text.split('\n')]


class DescriptionParser:
    """Parses the directive mini-language out of event descriptions."""

    def __init__(self):
        self._handlers: Dict[str, Callable[[ParsedFields, str], bool]] = {
            'tickets': self._set_tickets,
            'source': self._set_source,
            'image': self._set_image,
            'tags': self._set_tags,
            'organizer': self._set_organizer,
            'pricefrom': self._set_price_from,
            'featured': self._set_featured,
        }

    def parse(self, description: Optional[str]) -> Tuple[ParsedFields, Optional[str]]:
        """
        Extract structured fields from a description.

        Args:
            description: Raw description, possibly containing HTML

        Returns:
            Tuple of (ParsedFields, cleaned display description or None)
        """
        fields = ParsedFields()
        if not description or not description.strip():
            return fields, None

        try:
            text = markup_to_text(description)
        except Exception as e:
            logger.warning(f"Failed to convert description markup, using raw text: {e}")
            text = description

        lines = normalize_lines(text)
        kept_lines = []
        tickets_from_directive = False
        image_from_directive = False

        for line in lines:
            match = DIRECTIVE_RE.match(line)
            if match and self._apply_directive(fields, match.group(1).lower(), match.group(2)):
                key = match.group(1).lower()
                tickets_from_directive = tickets_from_directive or key == 'tickets'
                image_from_directive = image_from_directive or key == 'image'
                continue
            kept_lines.append(line)

        fields.urls = extract_urls('\n'.join(lines))

        if not tickets_from_directive and fields.urls:
            fields.tickets_url = (
                first_matching_url(fields.urls, TICKET_VENDOR_RULES) or fields.urls[0]
            )
        if not image_from_directive:
            fields.image_url = first_matching_url(fields.urls, IMAGE_URL_RULES)

        clean = BLANK_RUN_RE.sub('\n\n', '\n'.join(kept_lines)).strip()
        return fields, clean or None

    def _apply_directive(self, fields: ParsedFields, key: str, value: str) -> bool:
        if not value:
            return False
        return self._handlers[key](fields, value)

    @staticmethod
    def _url_value(value: str) -> Optional[str]:
        match = URL_RE.search(value)
        if not match:
            return None
        return clean_url(match.group(0))

    def _set_tickets(self, fields: ParsedFields, value: str) -> bool:
        url = self._url_value(value)
        if url:
            fields.tickets_url = url
        return url is not None

    def _set_source(self, fields: ParsedFields, value: str) -> bool:
        url = self._url_value(value)
        if url:
            fields.source_url = url
        return url is not None

    def _set_image(self, fields: ParsedFields, value: str) -> bool:
        url = self._url_value(value)
        if url:
            fields.image_url = url
        return url is not None

    @staticmethod
    def _set_tags(fields: ParsedFields, value: str) -> bool:
        tags = {tag.strip().lower() for tag in value.split(',') if tag.strip()}
        if not tags:
            return False
        fields.tags = tags
        return True

    @staticmethod
    def _set_organizer(fields: ParsedFields, value: str) -> bool:
        fields.organizer_override = value
        return True

    @staticmethod
    def _set_price_from(fields: ParsedFields, value: str) -> bool:
        match = PRICE_RE.match(value)
        if not match:
            return False
        try:
            fields.price_from = Decimal(match.group(1))
        except InvalidOperation:
            return False
        return True

    @staticmethod
    def _set_featured(fields: ParsedFields, value: str) -> bool:
        token = value.lower()
        if token in TRUTHY:
            fields.featured = True
        elif token in FALSY:
            fields.featured = False
        else:
            return False
        return True
