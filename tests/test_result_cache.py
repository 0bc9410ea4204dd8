"""Tests for preflight.scheduler.cache — per-file result cache."""

from __future__ import annotations

from preflight.models import AnalysisResult
from preflight.scheduler.cache import FileResultCache
from preflight.scheduler.scheduler import FileAnalysis


def _analysis(rule_id: str = "console-log-detection") -> FileAnalysis:
    return FileAnalysis(
        results=(AnalysisResult(rule_id=rule_id, severity="warning", message="m", file="src/a.ts", line=1),)
    )


class TestFileResultCache:
    def test_miss_then_hit(self) -> None:
        cache = FileResultCache()
        assert cache.get("src/a.ts", "h1", "v1") is None
        analysis = _analysis()
        cache.put("src/a.ts", "h1", "v1", analysis)
        assert cache.get("src/a.ts", "h1", "v1") is analysis
        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1}

    def test_content_change_evicts(self) -> None:
        cache = FileResultCache()
        cache.put("src/a.ts", "h1", "v1", _analysis())
        assert cache.get("src/a.ts", "h2", "v1") is None
        assert cache.stats()["entries"] == 0
        # The stale entry is gone even for the old hash.
        assert cache.get("src/a.ts", "h1", "v1") is None

    def test_version_change_evicts(self) -> None:
        cache = FileResultCache()
        cache.put("src/a.ts", "h1", "v1", _analysis())
        assert cache.get("src/a.ts", "h1", "v2") is None
        assert cache.stats() == {"entries": 0, "hits": 0, "misses": 1}

    def test_put_replaces(self) -> None:
        cache = FileResultCache()
        cache.put("src/a.ts", "h1", "v1", _analysis("old"))
        newer = _analysis("new")
        cache.put("src/a.ts", "h2", "v1", newer)
        assert cache.get("src/a.ts", "h2", "v1") is newer
        assert cache.stats()["entries"] == 1

    def test_clear_path(self) -> None:
        cache = FileResultCache()
        cache.put("src/a.ts", "h", "v", _analysis())
        cache.put("src/b.ts", "h", "v", _analysis())
        cache.clear_path("src/a.ts")
        cache.clear_path("src/missing.ts")
        assert cache.get("src/a.ts", "h", "v") is None
        assert cache.get("src/b.ts", "h", "v") is not None

    def test_clear(self) -> None:
        cache = FileResultCache()
        cache.put("src/a.ts", "h", "v", _analysis())
        cache.clear()
        assert cache.stats()["entries"] == 0
