"""Unit tests for ICSFeedFetcher."""
import pytest
import responses
from requests.exceptions import ConnectionError, Timeout

from feed.ics_feed_fetcher import FeedFetchError, ICSFeedFetcher, normalize_feed_url

FEED_URL = "https://calendar.example.com/team.ics"
FEED_BODY = "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"


class TestICSFeedFetcher:
    """Test cases for ICSFeedFetcher class."""

    @responses.activate
    def test_fetch_success(self):
        """Test successful feed download."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        fetcher = ICSFeedFetcher(timeout=30, base_delay=0)

        assert fetcher.fetch(FEED_URL) == FEED_BODY
        request = responses.calls[0].request
        assert request.headers['Accept'] == 'text/calendar'
        assert 'CalendarSubscriptionSync' in request.headers['User-Agent']

    @responses.activate
    def test_fetch_rewrites_webcal_scheme(self):
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        fetcher = ICSFeedFetcher(base_delay=0)
        fetcher.fetch("webcal://calendar.example.com/team.ics")

        assert responses.calls[0].request.url == FEED_URL

    @responses.activate
    def test_fetch_decodes_utf8_without_charset(self):
        """Feeds without a charset are still read as UTF-8."""
        body = "BEGIN:VCALENDAR\r\nSUMMARY:Café\r\nEND:VCALENDAR\r\n"
        responses.add(
            responses.GET,
            FEED_URL,
            body=body.encode('utf-8'),
            status=200,
            content_type='text/calendar'
        )

        assert "Café" in ICSFeedFetcher(base_delay=0).fetch(FEED_URL)

    @responses.activate
    def test_fetch_follows_redirects(self):
        old_url = "https://old.example.com/team.ics"
        responses.add(
            responses.GET,
            old_url,
            status=301,
            headers={'Location': FEED_URL}
        )
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        assert ICSFeedFetcher(base_delay=0).fetch(old_url) == FEED_BODY

    @responses.activate
    def test_fetch_retries_server_errors(self):
        """Test retry logic succeeds after initial failures."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(responses.GET, FEED_URL, body="Server Error", status=503)
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        fetcher = ICSFeedFetcher(max_retries=3, base_delay=0)

        assert fetcher.fetch(FEED_URL) == FEED_BODY
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_all_retries_fail(self):
        """Test that the HTTP status is reported once retries are exhausted."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body="Server Error", status=500)

        fetcher = ICSFeedFetcher(max_retries=3, base_delay=0)

        with pytest.raises(FeedFetchError) as excinfo:
            fetcher.fetch(FEED_URL)

        assert str(excinfo.value) == "HTTP 500: Internal Server Error"
        assert excinfo.value.status_code == 500
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_client_error_not_retried(self):
        responses.add(responses.GET, FEED_URL, body="Not Found", status=404)

        fetcher = ICSFeedFetcher(max_retries=3, base_delay=0)

        with pytest.raises(FeedFetchError) as excinfo:
            fetcher.fetch(FEED_URL)

        assert str(excinfo.value) == "HTTP 404: Not Found"
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_timeout(self):
        """Test timeout handling."""
        for _ in range(2):
            responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        fetcher = ICSFeedFetcher(max_retries=2, base_delay=0)

        with pytest.raises(FeedFetchError) as excinfo:
            fetcher.fetch(FEED_URL)

        assert "Request timed out" in str(excinfo.value)
        assert excinfo.value.status_code is None
        assert len(responses.calls) == 2

    @responses.activate
    def test_fetch_recovers_from_connection_error(self):
        responses.add(responses.GET, FEED_URL, body=ConnectionError("refused"))
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        fetcher = ICSFeedFetcher(max_retries=3, base_delay=0)

        assert fetcher.fetch(FEED_URL) == FEED_BODY

    @responses.activate
    def test_fetch_non_2xx_final_status_fails(self):
        """A 3xx that is not followed is an error even with a calendar body."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=300)

        fetcher = ICSFeedFetcher(max_retries=3, base_delay=0)

        with pytest.raises(FeedFetchError) as excinfo:
            fetcher.fetch(FEED_URL)

        assert str(excinfo.value).startswith("HTTP 300:")
        assert excinfo.value.status_code == 300
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_not_modified_fails(self):
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=304)

        with pytest.raises(FeedFetchError) as excinfo:
            ICSFeedFetcher(base_delay=0).fetch(FEED_URL)

        assert excinfo.value.status_code == 304

    @responses.activate
    def test_fetch_error_without_message_uses_exception_name(self):
        responses.add(responses.GET, FEED_URL, body=ConnectionError())

        fetcher = ICSFeedFetcher(max_retries=1, base_delay=0)

        with pytest.raises(FeedFetchError) as excinfo:
            fetcher.fetch(FEED_URL)

        assert str(excinfo.value) == "ConnectionError"


@pytest.mark.parametrize('url, expected', [
    ("webcal://example.com/a.ics", "https://example.com/a.ics"),
    ("webcals://example.com/a.ics", "https://example.com/a.ics"),
    ("https://example.com/a.ics", "https://example.com/a.ics"),
    ("http://example.com/webcal://x", "http://example.com/webcal://x"),
    ("WEBCAL://example.com/a.ics", "WEBCAL://example.com/a.ics"),
])
def test_normalize_feed_url(url, expected):
    assert normalize_feed_url(url) == expected
