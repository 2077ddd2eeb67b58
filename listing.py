from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


# Anchor texts rendered by directory-index pages for sorting, navigation and
# column headers. They are page chrome, never children of the listed node.
IGNORE_NAMES = frozenset(
    {
        "Name",
        "Last modified",
        "Size",
        "Description",
        "Parent Directory",
        "Type",
        "..",
        "../",
    }
)
HIDDEN_PREFIX = "."
NETWORK_SCHEMES = ("http", "https")


class InvalidRootError(RuntimeError):
    pass


class ListingError(RuntimeError):
    pass


@dataclass
class ListingEntry:
    name: str
    href: str
    is_dir: bool


def validate_url(url: str) -> str:
    parsed = urlparse(url)
    if not url:
        raise InvalidRootError("URL is required")
    if parsed.scheme not in NETWORK_SCHEMES:
        raise InvalidRootError(f"URL must begin with http or https: <{url}>")
    if not parsed.netloc:
        raise InvalidRootError(f"URL has no host specified: <{url}>")
    return url


def is_network_root(root: str) -> bool:
    lowered = root.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def with_trailing_slash(value: str) -> str:
    return value.rstrip("/") + "/"


def build_session(user: str = "", password: str = "", retries: int = 3) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=0.8,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    if user or password:
        session.auth = (user, password)
    return session


class HttpListingSource:
    """Lists the children of a node served as an HTML directory index."""

    def __init__(
        self,
        root_url: str,
        user: str = "",
        password: str = "",
        timeout: Tuple[int, int] = (10, 60),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.root_url = with_trailing_slash(root_url)
        self.timeout = timeout
        self.session = session if session is not None else build_session(user, password)

    def fetch(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ListingError(f"error retrieving {url}: {exc}") from exc
        return response

    def list_children(self, locator: str) -> List[ListingEntry]:
        node_url = self.root_url + locator
        response = self.fetch(node_url)
        soup = BeautifulSoup(self._decode_text(response.content), "html.parser")

        entries: List[ListingEntry] = []
        for anchor in soup.find_all("a"):
            href = anchor.get("href")
            if href is None:
                continue
            name = anchor.get_text().strip()
            if not name or name in IGNORE_NAMES:
                continue
            # a name is a single path segment; directories may end in "/"
            if "/" in name.rstrip("/") or name.rstrip("/") in (".", ".."):
                continue
            fragment = self._relative_href(node_url, href)
            if not fragment:
                continue
            entries.append(ListingEntry(name=name, href=fragment, is_dir=fragment.endswith("/")))
        return entries

    def _relative_href(self, node_url: str, href: str) -> Optional[str]:
        candidate = href.strip()
        if not candidate or candidate.startswith(("?", "#")):
            return None
        resolved = urlparse(urljoin(node_url, candidate))
        if resolved.query:
            return None
        # keep the server's own encoding of the path so locators round-trip
        clean = urlunparse((resolved.scheme, resolved.netloc, resolved.path, "", "", ""))
        if not clean.startswith(node_url) or clean == node_url:
            return None
        return clean[len(node_url):]

    def _decode_text(self, body: bytes) -> str:
        for encoding in ("utf-8", "latin-1"):
            try:
                return body.decode(encoding)
            except UnicodeDecodeError:
                continue
        return body.decode("utf-8", errors="ignore")


class LocalListingSource:
    """Lists the children of a directory below a local root."""

    def __init__(self, root_path: str, on_warning: Optional[Callable[[str], None]] = None) -> None:
        self.root_path = os.path.abspath(os.path.expanduser(root_path))
        self.on_warning = on_warning

    def path_for(self, locator: str) -> str:
        if not locator:
            return self.root_path
        return os.path.join(self.root_path, *[part for part in locator.split("/") if part])

    def list_children(self, locator: str) -> List[ListingEntry]:
        path = self.path_for(locator)
        try:
            with os.scandir(path) as iterator:
                found = sorted(iterator, key=lambda item: item.name)
        except PermissionError as exc:
            if not locator:
                raise ListingError(f"cannot read root directory {path}: {exc.strerror}") from exc
            if self.on_warning is not None:
                self.on_warning(f"skipping unreadable directory {path}: {exc.strerror}")
            return []

        entries: List[ListingEntry] = []
        for item in found:
            if item.name.startswith(HIDDEN_PREFIX):
                continue
            # symlinked directories are reported as plain entries; never followed
            is_dir = item.is_dir(follow_symlinks=False)
            href = item.name + "/" if is_dir else item.name
            entries.append(ListingEntry(name=item.name, href=href, is_dir=is_dir))
        return entries


def source_for(
    root: str,
    user: str = "",
    password: str = "",
    on_warning: Optional[Callable[[str], None]] = None,
) -> HttpListingSource | LocalListingSource:
    if is_network_root(root):
        return HttpListingSource(root, user=user, password=password)
    return LocalListingSource(root, on_warning=on_warning)
