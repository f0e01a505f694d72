from viralize.utils.cache import DiskAssetCache, MemoryAssetCache, content_key


def test_content_key_is_stable_and_namespaced():
    a = content_key("voz", "hola mundo")
    assert a == content_key("voz", "hola mundo")
    assert a.startswith("tts:")
    assert a != content_key("otra-voz", "hola mundo")
    assert a != content_key("voz", "hola  mundo")
    assert content_key("x", namespace="img").startswith("img:")


def test_memory_cache_get_set():
    cache = MemoryAssetCache()
    assert cache.get("k") is None
    cache.set("k", b"audio")
    assert cache.get("k") == b"audio"
    assert "k" in cache
    assert len(cache) == 1


def test_disk_cache_persists_between_instances(tmp_path):
    cache = DiskAssetCache(str(tmp_path / "cache"))
    cache.set("tts:abc", b"\x00\x01", ttl_hours=1)
    assert cache.get("tts:abc") == b"\x00\x01"
    assert "tts:abc" in cache
    cache.close()

    reopened = DiskAssetCache(str(tmp_path / "cache"))
    assert reopened.get("tts:abc") == b"\x00\x01"
    stats = reopened.get_stats()
    assert stats["items_count"] == 1
    assert stats["directory"] == str(tmp_path / "cache")

    reopened.clear_all()
    assert reopened.get("tts:abc") is None
    reopened.close()
