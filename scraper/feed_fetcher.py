"""HTTP fetcher for published calendar feeds."""
import logging
import time

import requests

logger = logging.getLogger(__name__)


class ICSFeedFetcher:
    """Retrieves raw calendar text for one feed URL."""

    USER_AGENT = 'community-events-ics-import/1.0'

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Number of attempts before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    def fetch(self, url: str) -> str:
        """
        Fetch a calendar feed with retry logic.

        Args:
            url: Feed URL

        Returns:
            Calendar document as text

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching feed {url} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    url,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                response.raise_for_status()
                # Feeds frequently omit the charset; RFC 5545 mandates UTF-8
                if not response.encoding or response.encoding.lower() == 'iso-8859-1':
                    response.encoding = 'utf-8'
                return response.text

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Feed request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} attempts for {url} failed. Last error: {e}"
                    )
                    raise
