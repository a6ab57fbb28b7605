"""HTTP fetcher for remote iCalendar feeds."""
import logging
import time
from typing import Optional

import requests

logger = logging.getLogger(__name__)

SCHEME_REWRITES = (
    ('webcal://', 'https://'),
    ('webcals://', 'https://'),
)


class FeedFetchError(Exception):
    """Raised when a feed cannot be downloaded."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def normalize_feed_url(url: str) -> str:
    """Rewrite webcal:// and webcals:// URLs to https://."""
    for prefix, replacement in SCHEME_REWRITES:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


class ICSFeedFetcher:
    """Downloads iCalendar feeds with retry and exponential backoff."""

    USER_AGENT = 'CalendarSubscriptionSync/1.0'

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the feed fetcher.

        Args:
            timeout: Connect and read timeout in seconds (default: 30)
            max_retries: Attempts per fetch, including the first (default: 3)
            base_delay: Backoff base in seconds, doubled after each attempt
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def fetch(self, url: str) -> str:
        """
        Fetch a feed and return its body decoded as UTF-8.

        Server errors and network failures are retried; client errors
        fail immediately.

        Args:
            url: Feed URL; webcal schemes are accepted

        Returns:
            Response body as text

        Raises:
            FeedFetchError: If the feed cannot be fetched
        """
        target = normalize_feed_url(url)

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching feed {target} (attempt {attempt + 1}/{self.max_retries})"
                )
                response = self.session.get(
                    target,
                    timeout=(self.timeout, self.timeout),
                    allow_redirects=True,
                    headers={
                        'User-Agent': self.USER_AGENT,
                        'Accept': 'text/calendar'
                    }
                )
            except requests.RequestException as e:
                error = FeedFetchError(str(e) or type(e).__name__)
                retryable = True
            else:
                if 200 <= response.status_code < 300:
                    response.encoding = 'utf-8'
                    return response.text
                error = FeedFetchError(
                    f"HTTP {response.status_code}: {response.reason}",
                    status_code=response.status_code
                )
                retryable = response.status_code >= 500

            if not retryable or attempt == self.max_retries - 1:
                logger.error(f"Giving up on {target}: {error}")
                raise error

            delay = self.base_delay * (2 ** attempt)
            logger.warning(
                f"Request failed (attempt {attempt + 1}/{self.max_retries}): {error}. "
                f"Retrying in {delay} seconds..."
            )
            time.sleep(delay)
