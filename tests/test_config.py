"""Tests for config module."""
from bookmark_insights.config import Config, SearchConfig, SimilarityConfig


class TestConfig:
    def test_default_values(self):
        config = Config()
        assert config.search.default_limit == 50
        assert config.search.stale_after_days == 30
        assert config.similarity.threshold == 0.3
        assert config.similarity.max_pairs == 100
        assert config.similarity.pairs_cache_ttl == 300.0
        assert config.similarity.records_ttl == 86400.0
        assert config.similarity.sample_seed == 42
        assert config.db_path is None
        assert config.chrome_profile == "Default"
        assert config.log_level == "INFO"

    def test_search_from_env(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_SEARCH_LIMIT", "20")
        monkeypatch.setenv("BOOKMARKS_STALE_DAYS", "90")
        config = SearchConfig.from_env()
        assert config.default_limit == 20
        assert config.stale_after_days == 90

    def test_similarity_from_env(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_SIMILARITY_THRESHOLD", "0.5")
        monkeypatch.setenv("BOOKMARKS_MAX_PAIRS", "10")
        monkeypatch.setenv("BOOKMARKS_SAMPLE_SEED", "7")
        config = SimilarityConfig.from_env()
        assert config.threshold == 0.5
        assert config.max_pairs == 10
        assert config.sample_seed == 7

    def test_empty_seed_means_unseeded(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_SAMPLE_SEED", "")
        assert SimilarityConfig.from_env().sample_seed is None

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_DB", "/tmp/test.db")
        monkeypatch.setenv("BOOKMARKS_CHROME_PROFILE", "Profile 1")
        monkeypatch.setenv("BOOKMARKS_LOG_LEVEL", "debug")

        config = Config.from_env()
        assert str(config.db_path) == "/tmp/test.db"
        assert config.chrome_profile == "Profile 1"
        assert config.log_level == "DEBUG"

    def test_chrome_profile_default(self, monkeypatch):
        monkeypatch.delenv("BOOKMARKS_CHROME_PROFILE", raising=False)
        config = Config.from_env()
        assert config.chrome_profile == "Default"
