from placecache.observability.cache_metrics import CacheMetrics


def test_snapshot_tracks_tiers_and_errors():
    metrics = CacheMetrics()
    metrics.record_lookup(served_from="upstream", latency_ms=120)
    metrics.record_lookup(served_from="memory", latency_ms=1)
    metrics.record_lookup(served_from="persisted", latency_ms=5, stale=True)
    metrics.record_upstream_error("quota_exceeded")
    metrics.record_store_error()
    metrics.record_coalesced()

    snap = metrics.snapshot()
    assert snap["total_lookups"] == 3
    assert snap["cache_hit_rate"] == round(2 / 3, 4)
    assert snap["stale_served"] == 1
    assert snap["upstream_errors"] == {"quota_exceeded": 1}
    assert snap["store_errors"] == 1
    assert snap["coalesced"] == 1
    assert snap["latency"]["upstream"]["max_ms"] == 120

    metrics.reset()
    assert metrics.snapshot()["total_lookups"] == 0
