"""Facet statistics for a search result set."""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from bookmark_insights.models import Bookmark, FacetStats


def compute_stats(bookmarks: Iterable[Bookmark], now: Optional[datetime] = None) -> FacetStats:
    """Count facet values over a result set in a single pass.

    The rolling windows (7, 14, 90 and 180 days) deliberately overlap with
    the calendar-aligned month and year buckets; "older" is everything added
    before the start of the current year.

    Args:
        bookmarks: Result set (normally the full filtered set, not one page)
        now: Reference time; defaults to the current UTC time

    Returns:
        FacetStats for the result set
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    three_months_ago = now - timedelta(days=90)
    six_months_ago = now - timedelta(days=180)
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    start_of_year = start_of_month.replace(month=1)

    stats = FacetStats()
    buckets = stats.date_counts

    for bookmark in bookmarks:
        if bookmark.domain:
            stats.domain_counts[bookmark.domain] = stats.domain_counts.get(bookmark.domain, 0) + 1
            latest = stats.domain_latest.get(bookmark.domain)
            if latest is None or bookmark.date_added > latest:
                stats.domain_latest[bookmark.domain] = bookmark.date_added

        if bookmark.folder_path:
            stats.folder_counts[bookmark.folder_path] = stats.folder_counts.get(bookmark.folder_path, 0) + 1

        for topic in bookmark.topics:
            stats.topic_counts[topic] = stats.topic_counts.get(topic, 0) + 1

        if bookmark.creator:
            key = bookmark.creator_key
            stats.creator_counts[key] = stats.creator_counts.get(key, 0) + 1

        if bookmark.content_type:
            stats.content_type_counts[bookmark.content_type] = (
                stats.content_type_counts.get(bookmark.content_type, 0) + 1
            )

        added = bookmark.date_added
        if added > week_ago:
            buckets.week += 1
        if added > two_weeks_ago:
            buckets.two_week += 1
        if added >= start_of_month:
            buckets.month += 1
        if added > three_months_ago:
            buckets.three_month += 1
        if added > six_months_ago:
            buckets.six_month += 1
        if added >= start_of_year:
            buckets.year += 1
        else:
            buckets.older += 1

    return stats
