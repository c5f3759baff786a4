"""Advanced query parsing: special filters, regexes, phrases and +/- terms.

Query syntax:
  key:value        special filter (category, domain, platform, channel,
                   author, repo, type, hasimage, playlist, accessed, stale,
                   enriched, dead, folder); quoted values are allowed
  /pattern/flags   regular expression, case-insensitive unless flags given
  "exact phrase"   must contain; +"..." required, -"..." excluded
  +term / -term    required / excluded term
  term             regular term, at least one must match
"""
import logging
import re
from typing import List, Optional, Tuple

from bookmark_insights.models import ActiveFilters, Bookmark, ParsedQuery, SpecialFilters


logger = logging.getLogger(__name__)

_VALUE = r'(?:"([^"]+)"|(\S+))'
_YES_NO = r"(yes|no)\b"

# (query key, SpecialFilters attribute, value pattern, lowercase value)
_SPECIAL_FILTERS = [
    ("category", "category", _VALUE, True),
    ("domain", "domain", _VALUE, True),
    ("platform", "platform", _VALUE, True),
    ("channel", "creator", _VALUE, False),
    ("author", "creator", _VALUE, False),
    ("repo", "repo", _VALUE, True),
    ("type", "content_type", _VALUE, True),
    ("hasimage", "has_image", _YES_NO, None),
    ("playlist", "playlist", _VALUE, False),
    ("accessed", "accessed", _YES_NO, None),
    ("stale", "stale", _YES_NO, None),
    ("enriched", "enriched", _YES_NO, None),
    ("dead", "dead", _YES_NO, None),
    ("folder", "folder", _VALUE, True),
]

_COMPILED_SPECIAL_FILTERS = [
    (re.compile(rf"(?<!\S){key}:{value}", re.IGNORECASE), attr, lower)
    for key, attr, value, lower in _SPECIAL_FILTERS
]

_REGEX_TOKEN = re.compile(r"/([^/]+)/([gimsuvy]*)")
_PHRASE = re.compile(r'([+-]?)"([^"]+)"')

_JS_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}

# Sidebar filter syntax handled by parse_filter_query
_FILTER_PREFIXES = [
    ("domain", "domains"),
    ("site", "domains"),
    ("folder", "folders"),
    ("topic", "topics"),
    ("type", "types"),
    ("tag", "tags"),
]

_COMPILED_FILTER_PREFIXES = [
    (re.compile(rf"(?<!\S){prefix}:{_VALUE}", re.IGNORECASE), attr)
    for prefix, attr in _FILTER_PREFIXES
]
_DEAD_FILTER = re.compile(r"(?<!\S)(?:dead:yes|is:dead)\b", re.IGNORECASE)
_STALE_FILTER = re.compile(r"(?<!\S)(?:stale:yes|is:stale)\b", re.IGNORECASE)


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def parse_special_filters(query: str) -> Tuple[SpecialFilters, str]:
    """Lift `key:value` filters out of a raw query.

    Args:
        query: Raw search query

    Returns:
        Tuple of (filters, remaining query text)
    """
    filters = SpecialFilters()
    if not query or not query.strip():
        return filters, ""

    remaining = query
    for pattern, attr, lower in _COMPILED_SPECIAL_FILTERS:
        match = pattern.search(remaining)
        if not match:
            continue
        if lower is None:
            value = match.group(1).lower() == "yes"
        else:
            value = match.group(1) or match.group(2)
            if lower:
                value = value.lower()
        setattr(filters, attr, value)
        remaining = remaining[:match.start()] + remaining[match.end():]

    return filters, _squash(remaining)


def compile_query_regex(pattern: str, flags: str = "") -> Optional[re.Pattern]:
    """Compile a `/pattern/flags` query token.

    Invalid patterns are logged and dropped rather than raised, so one bad
    regex never sinks the rest of the query.

    Args:
        pattern: Regex source between the slashes
        flags: Trailing flag letters; empty means case-insensitive

    Returns:
        Compiled pattern, or None when the pattern is invalid
    """
    compiled_flags = 0
    for letter in flags or "i":
        compiled_flags |= _JS_FLAGS.get(letter, 0)
    try:
        return re.compile(pattern, compiled_flags)
    except re.error as e:
        logger.warning("Invalid regex pattern /%s/%s: %s", pattern, flags, e)
        return None


def parse_advanced_query(query: str) -> ParsedQuery:
    """Split query text into required, excluded, phrase, regex and regular terms.

    Args:
        query: Query text with special filters already removed

    Returns:
        ParsedQuery (all text terms lowercased)
    """
    parsed = ParsedQuery()
    if not query or not query.strip():
        return parsed

    for match in _REGEX_TOKEN.finditer(query):
        compiled = compile_query_regex(match.group(1), match.group(2))
        if compiled is not None:
            parsed.regex_patterns.append(compiled)
    remaining = _REGEX_TOKEN.sub(" ", query)

    for match in _PHRASE.finditer(remaining):
        modifier, phrase = match.group(1), match.group(2).lower()
        if modifier == "+":
            parsed.positive.append(phrase)
        elif modifier == "-":
            parsed.negative.append(phrase)
        else:
            parsed.phrases.append(phrase)
    remaining = _PHRASE.sub(" ", remaining)

    for term in remaining.split():
        lower_term = term.lower()
        if term in ("+", "-"):
            continue
        if term.startswith("+"):
            parsed.positive.append(lower_term[1:])
        elif term.startswith("-"):
            parsed.negative.append(lower_term[1:])
        else:
            parsed.regular.append(lower_term)

    return parsed


def parse_query(query: str) -> Tuple[SpecialFilters, ParsedQuery]:
    """Parse a raw query into special filters and the advanced query."""
    filters, remaining = parse_special_filters(query)
    return filters, parse_advanced_query(remaining)


def searchable_text(bookmark: Bookmark) -> str:
    """Concatenate the fields free-text queries match against (original case)."""
    return " ".join([
        bookmark.title,
        bookmark.url,
        bookmark.description,
        bookmark.domain,
        bookmark.category,
        " ".join(bookmark.keywords),
    ])


def matches_advanced_query(bookmark: Bookmark, parsed: ParsedQuery) -> bool:
    """Check a bookmark against the boolean semantics of a parsed query.

    All positive terms, phrases and regexes must match, no negative term may
    appear, and at least one regular term must match when any are given.
    """
    original = searchable_text(bookmark)
    text = original.lower()

    if any(term not in text for term in parsed.positive):
        return False
    if any(term in text for term in parsed.negative):
        return False
    if any(phrase not in text for phrase in parsed.phrases):
        return False
    for regex in parsed.regex_patterns:
        target = text if regex.flags & re.IGNORECASE else original
        if not regex.search(target):
            return False
    if parsed.regular and not any(term in text for term in parsed.regular):
        return False

    return True


def parse_filter_query(query: str) -> Tuple[str, ActiveFilters]:
    """Parse the sidebar filter syntax into structured filters.

    Supports domain:/site:, folder:, topic:, type: and tag: (quoted values
    allowed, repeated keys accumulate) plus dead:yes / is:dead and
    stale:yes / is:stale.

    Args:
        query: Raw filter query

    Returns:
        Tuple of (leftover free text, ActiveFilters)
    """
    filters = ActiveFilters()
    if not query:
        return "", filters

    text = query
    for pattern, attr in _COMPILED_FILTER_PREFIXES:
        values: List[str] = getattr(filters, attr)
        for match in pattern.finditer(text):
            values.append((match.group(1) or match.group(2)).lower())
        text = pattern.sub("", text)

    if _DEAD_FILTER.search(text):
        filters.dead_links = True
        text = _DEAD_FILTER.sub("", text)

    if _STALE_FILTER.search(text):
        filters.stale = True
        text = _STALE_FILTER.sub("", text)

    return _squash(text), filters
