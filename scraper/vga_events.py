"""Scraper for the VGA Golf state events page."""
import logging
import time
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from processor.models import Event
from scraper.line_parser import EventLineParser

logger = logging.getLogger(__name__)


class VGAEventsScraper:
    """Scraper for the VGA Golf state events listing."""

    BASE_URL = "https://vgagolf.org/state-events/"
    USER_AGENT = "vga-events-tracker/1.0"
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(
        self,
        timeout: int = 30,
        url: Optional[str] = None,
        parser: Optional[EventLineParser] = None
    ):
        """
        Initialize the state events scraper.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            url: Page to scrape (default: BASE_URL)
            parser: Line parser used to extract events
        """
        self.timeout = timeout
        self.url = url or self.BASE_URL
        self.parser = parser or EventLineParser()

    def fetch_events(self) -> List[Event]:
        """
        Fetch and parse all state events.

        Returns:
            List of unique Event objects in page order

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        logger.info(f"Fetching state events from {self.url}")

        html_content = self._fetch_page_html()
        events = self.parse_events(html_content, self.url)

        logger.info(f"Successfully fetched {len(events)} events")
        return events

    def parse_events(self, html_content: str, source_url: str) -> List[Event]:
        """
        Parse events from the state events page HTML.

        Args:
            html_content: HTML content of the page
            source_url: URL recorded on each event

        Returns:
            List of Event objects
        """
        text = self.html_to_text(html_content)
        return self.parser.parse(text, source_url)

    def html_to_text(self, html_content: str) -> str:
        """
        Reduce page HTML to its text content, one source line per line.

        Args:
            html_content: HTML content of the page

        Returns:
            Text with entities decoded and scripts/styles removed
        """
        soup = BeautifulSoup(html_content, 'html.parser')
        for element in soup(['script', 'style']):
            element.decompose()
        return soup.get_text()

    def _fetch_page_html(self) -> str:
        """
        Fetch the page HTML with retry logic.

        Returns:
            HTML content as string

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        headers = {'User-Agent': self.USER_AGENT}

        for attempt in range(self.MAX_RETRIES):
            try:
                logger.info(
                    f"Fetching page HTML (attempt {attempt + 1}/{self.MAX_RETRIES})"
                )
                response = requests.get(
                    self.url,
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    # Calculate exponential backoff delay
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise
