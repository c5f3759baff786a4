"""Configuration for the bookmark insights engine and MCP server."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from bookmark_insights.models import DEFAULT_BOOST


@dataclass
class SearchConfig:
    """Configuration for search and filtering."""
    default_limit: int = 50
    stale_after_days: int = 30  # Unopened bookmarks older than this are stale
    boost: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BOOST))

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Create config from environment variables."""
        return cls(
            default_limit=int(os.environ.get("BOOKMARKS_SEARCH_LIMIT", "50")),
            stale_after_days=int(os.environ.get("BOOKMARKS_STALE_DAYS", "30")),
        )


@dataclass
class SimilarityConfig:
    """Configuration for similarity and duplicate detection."""
    threshold: float = 0.3
    max_pairs: int = 100

    # Cache lifetimes (seconds)
    pairs_cache_ttl: float = 300.0
    records_ttl: float = 86400.0

    # Per-bookmark candidate selection
    top_n: int = 10
    domain_candidates: int = 50
    category_candidates: int = 30
    keyword_candidates: int = 20

    # Cross-domain fuzzy scan
    fuzzy_sample_size: int = 200
    sample_seed: Optional[int] = 42  # None = unseeded sample

    @classmethod
    def from_env(cls) -> "SimilarityConfig":
        """Create config from environment variables."""
        seed_str = os.environ.get("BOOKMARKS_SAMPLE_SEED", "42")

        return cls(
            threshold=float(os.environ.get("BOOKMARKS_SIMILARITY_THRESHOLD", "0.3")),
            max_pairs=int(os.environ.get("BOOKMARKS_MAX_PAIRS", "100")),
            sample_seed=int(seed_str) if seed_str else None,
        )


@dataclass
class Config:
    """Main configuration for the bookmark insights server."""
    search: SearchConfig = field(default_factory=SearchConfig.from_env)
    similarity: SimilarityConfig = field(default_factory=SimilarityConfig.from_env)
    db_path: Optional[Path] = None  # None = use default
    chrome_profile: str = "Default"  # Chrome profile name
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        db_path_str = os.environ.get("BOOKMARKS_DB")
        db_path = Path(db_path_str) if db_path_str else None

        return cls(
            search=SearchConfig.from_env(),
            similarity=SimilarityConfig.from_env(),
            db_path=db_path,
            chrome_profile=os.environ.get("BOOKMARKS_CHROME_PROFILE", "Default"),
            log_level=os.environ.get("BOOKMARKS_LOG_LEVEL", "INFO").upper(),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
