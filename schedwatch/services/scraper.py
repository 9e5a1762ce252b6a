"""
Handles all network interactions with the schedule website.
"""
import logging
from typing import Iterator, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from schedwatch.config import REQUEST_TIMEOUT_SECONDS, SCHEDULE_URL, SOURCE_BASE_URL
from schedwatch.services.tree import File, Folder

# Nesting of the schedule table: three levels of titled blocks, then groups of file links
FOLDER_DEPTH = 2
TABLE_SELECTOR = ".schedule-table"


class FetchError(RuntimeError):
    """The content source could not be reached or parsed; the current pass is abandoned."""


def _element_children(element):
    return element.find_all(True, recursive=False) if element is not None else []


class Scraper:
    """Fetches the schedule page and turns it into a fresh, unlinked content tree."""

    def __init__(self, url: str = SCHEDULE_URL, base_url: str = SOURCE_BASE_URL,
                 timeout: int = REQUEST_TIMEOUT_SECONDS):
        self.url = url
        self.base_url = base_url
        self.timeout = timeout
        self.session = requests.Session()

    def fetch_tree(self) -> Folder:
        """Scrapes the schedule page. Node ids are derived, never carried over."""
        logging.info(f"Fetching schedule from {self.url}")
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {self.url}: {e}")
        return self.parse_tree(response.text)

    def parse_tree(self, page_text: str) -> Folder:
        soup = BeautifulSoup(page_text, "html.parser")
        table = soup.select_one(TABLE_SELECTOR)
        if table is None:
            raise FetchError(f"No {TABLE_SELECTOR} element found at {self.url}")
        return self._parse_folder(table, FOLDER_DEPTH)

    def _parse_folder(self, element, depth: int) -> Folder:
        children = _element_children(element)
        if not children:
            return Folder(name="")
        header = children[0]
        folder = Folder(name=header.get_text(strip=True))
        body = header.find_next_sibling()
        for child in _element_children(body):
            if depth > 0:
                folder.attach(self._parse_folder(child, depth - 1))
            else:
                folder.attach(self._parse_group(child))
        return folder

    def _parse_group(self, element) -> Folder:
        children = _element_children(element)
        folder = Folder(name=children[0].get_text(strip=True) if children else "")
        for link in children[1:]:
            href = (link.get("href") or "").strip()
            folder.attach(File(name=link.get_text(strip=True), url=href))
        return folder

    def download(self, url: str) -> Tuple[Iterator[bytes], Optional[str]]:
        """Starts a streamed download; returns the body chunks and the content type."""
        full_url = urljoin(self.base_url, url)
        try:
            response = self.session.get(full_url, stream=True, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to download {full_url}: {e}")
        return response.iter_content(chunk_size=8192), response.headers.get("Content-Type")
