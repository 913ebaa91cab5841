from backend.fetcher.utils.format_cache import FormatCache


def test_put_and_get_roundtrip(fake_clock):
    cache = FormatCache(ttl_seconds=60, clock=fake_clock)
    entry = cache.put("abc", "https://host/a", "audio/mp4")
    assert entry.expires_at == entry.obtained_at + 60
    got = cache.get("abc")
    assert got == entry
    assert "abc" in cache
    assert len(cache) == 1


def test_entry_expires_on_read(fake_clock):
    cache = FormatCache(ttl_seconds=60, clock=fake_clock)
    cache.put("abc", "https://host/a", "audio/mp4")
    fake_clock.advance(59)
    assert cache.get("abc") is not None
    fake_clock.advance(1)
    assert cache.get("abc") is None
    # Expired entries are dropped, not kept around
    assert len(cache) == 0


def test_put_replaces_existing_entry(fake_clock):
    cache = FormatCache(ttl_seconds=60, clock=fake_clock)
    cache.put("abc", "https://host/old", "audio/mp4")
    fake_clock.advance(30)
    cache.put("abc", "https://host/new", "audio/webm")
    fake_clock.advance(45)
    entry = cache.get("abc")
    assert entry.direct_url == "https://host/new"
    assert entry.mime_type == "audio/webm"


def test_evict_and_clear():
    cache = FormatCache()
    cache.put("a", "https://host/a", "audio/mp4")
    cache.put("b", "https://host/b", "audio/mp4")
    assert cache.evict("a") is True
    assert cache.evict("a") is False
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0


def test_least_recently_used_entry_is_dropped_when_full():
    cache = FormatCache(max_entries=2)
    cache.put("a", "https://host/a", "audio/mp4")
    cache.put("b", "https://host/b", "audio/mp4")
    # Touch "a" so "b" becomes the oldest
    assert cache.get("a") is not None
    cache.put("c", "https://host/c", "audio/mp4")
    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert len(cache) == 2
