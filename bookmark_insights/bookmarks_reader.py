"""Chrome bookmarks reader: turns a profile's Bookmarks file into Bookmark records."""
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from bookmark_insights.models import Bookmark


logger = logging.getLogger(__name__)

# Chrome timestamps count microseconds since 1601-01-01 UTC
_WEBKIT_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)

CHROME_ROOTS = ["bookmark_bar", "other", "synced"]


def get_chrome_bookmarks_path(profile: str = "Default") -> Path:
    """Get the path to Chrome bookmarks file.

    Args:
        profile: Chrome profile name (default: "Default")

    Returns:
        Path to the Bookmarks file
    """
    home = Path.home()
    if os.name == "nt":  # Windows
        chrome_path = home / "AppData" / "Local" / "Google" / "Chrome" / "User Data" / profile / "Bookmarks"
    elif sys.platform == "darwin":  # macOS
        chrome_path = home / "Library" / "Application Support" / "Google" / "Chrome" / profile / "Bookmarks"
    elif os.name == "posix":  # Linux
        chrome_path = home / ".config" / "google-chrome" / profile / "Bookmarks"
        # Also check for chromium
        if not chrome_path.exists():
            chrome_path = home / ".config" / "chromium" / profile / "Bookmarks"
    else:
        raise OSError(f"Unsupported operating system: {os.name}")

    return chrome_path


def load_bookmarks_file(bookmarks_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load Chrome bookmarks JSON file.

    Args:
        bookmarks_path: Optional path to bookmarks file. If None, uses default Chrome location.

    Returns:
        Parsed JSON bookmarks data

    Raises:
        FileNotFoundError: If bookmarks file doesn't exist
        json.JSONDecodeError: If bookmarks file is malformed
    """
    if bookmarks_path is None:
        bookmarks_path = get_chrome_bookmarks_path()

    if not bookmarks_path.exists():
        raise FileNotFoundError(f"Bookmarks file not found at {bookmarks_path}")

    with open(bookmarks_path, "r", encoding="utf-8") as f:
        return json.load(f)


def webkit_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a Chrome timestamp string to a datetime; "0" or junk gives None."""
    try:
        micros = int(value)
    except (TypeError, ValueError):
        return None
    if micros <= 0:
        return None
    return _WEBKIT_EPOCH + timedelta(microseconds=micros)


def domain_for_url(url: str) -> str:
    """Classify a URL by host, or by scheme for non-web URLs."""
    if url.startswith(("http://", "https://")):
        try:
            return (urlsplit(url).hostname or "").lower() or "invalid-url"
        except ValueError:
            return "invalid-url"
    if url.startswith("chrome://"):
        return "chrome-internal"
    if url.startswith("file://"):
        return "local-file"
    if url.startswith("javascript:"):
        return "javascript-bookmarklet"
    if url.startswith("data:"):
        return "data-uri"
    if url.startswith("mailto:"):
        return "contact-link"
    return "other-protocol"


def extract_bookmarks(node: Dict[str, Any], bookmarks: List[Bookmark], folder_path: str = "") -> None:
    """Recursively extract bookmarks from Chrome bookmarks structure.

    Args:
        node: Current node in the bookmarks tree
        bookmarks: List to accumulate bookmarks
        folder_path: Slash-separated names of the enclosing folders
    """
    if node.get("type") == "url":
        url = node.get("url", "")
        bookmarks.append(Bookmark(
            id=str(node.get("id") or url),
            url=url,
            title=node.get("name") or "Untitled",
            domain=domain_for_url(url),
            folder_path=folder_path,
            date_added=webkit_to_datetime(node.get("date_added")) or datetime.now(timezone.utc),
            last_accessed=webkit_to_datetime(node.get("date_last_used")),
        ))
    elif node.get("type") == "folder":
        name = node.get("name", "")
        path = f"{folder_path}/{name}" if folder_path else name
        for child in node.get("children", []):
            extract_bookmarks(child, bookmarks, path)


def read_chrome_bookmarks(bookmarks_path: Optional[Path] = None) -> List[Bookmark]:
    """Read all bookmarks from Chrome bookmarks file.

    Args:
        bookmarks_path: Optional path to bookmarks file. If None, uses default Chrome location.

    Returns:
        List of Bookmark records

    Raises:
        FileNotFoundError: If bookmarks file doesn't exist
        json.JSONDecodeError: If bookmarks file is malformed
    """
    bookmarks_data = load_bookmarks_file(bookmarks_path)

    all_bookmarks: List[Bookmark] = []

    # Chrome stores bookmarks in roots: bookmark_bar, other, synced
    roots = bookmarks_data.get("roots", {})

    for root_name in CHROME_ROOTS:
        if root_name in roots:
            extract_bookmarks(roots[root_name], all_bookmarks)

    logger.info("Read %d bookmarks from %s", len(all_bookmarks), bookmarks_path or "default profile")
    return all_bookmarks
