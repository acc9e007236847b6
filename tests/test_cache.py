import pytest

from brewery.cache import MetadataCache


@pytest.fixture
def cache(tmp_path):
    return MetadataCache(tmp_path / "cache" / "metadata.db")


def test_set_then_get(cache):
    cache.set("formula/wget", {"name": "wget"})
    assert cache.get("formula/wget") == {"name": "wget"}
    assert cache.get("formula/curl") is None


def test_expired_entries_are_dropped(cache):
    cache.set("formula/wget", {"name": "wget"}, ttl_hours=0)
    cache.set("formula/curl", {"name": "curl"})

    assert cache.get("formula/wget") is None
    assert cache.get("formula/curl") == {"name": "curl"}
    # the expired row was deleted by the read, so nothing is left to clear
    assert cache.clear_expired() == 0


def test_clear_expired_counts_removed_rows(cache):
    cache.set("a", {}, ttl_hours=0)
    cache.set("b", {}, ttl_hours=0)
    cache.set("c", {})
    assert cache.clear_expired() == 2
    assert cache.clear_expired() == 0
    assert cache.get("c") == {}


def test_invalidate_removes_nested_keys(cache):
    cache.set("formula/wget", {"name": "wget"})
    cache.set("manifest/wget/1.0", {"manifests": []})
    cache.set("manifest/wget-extra/1.0", {"manifests": []})

    cache.invalidate("manifest/wget")

    assert cache.get("manifest/wget/1.0") is None
    assert cache.get("manifest/wget-extra/1.0") is not None
    assert cache.get("formula/wget") is not None
