from pathlib import Path

from cache import SummaryCache


def test_cache_persists_across_instances(tmp_path: Path):
    cache = SummaryCache(tmp_path / "cache")
    cache.set("prompt", "file", "model-a", "summary")

    reopened = SummaryCache(tmp_path / "cache")

    assert reopened.get("prompt", "file", "model-a") == "summary"
    assert len(reopened) == 1
    assert (tmp_path / "cache" / "file.json").exists()


def test_cache_entries_are_scoped_by_layer_and_model(tmp_path: Path):
    cache = SummaryCache(tmp_path / "cache")
    cache.set("prompt", "file", "model-a", "summary")

    assert cache.get("prompt", "directory", "model-a") is None
    assert cache.get("prompt", "file", "model-b") is None


def test_corrupt_layer_file_reads_as_empty(tmp_path: Path):
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "file.json").write_text("{not json")

    cache = SummaryCache(cache_dir)

    assert cache.get("prompt", "file", "model-a") is None
    assert len(cache) == 0
