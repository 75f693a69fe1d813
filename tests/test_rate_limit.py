import time

from servicepoint.core.rate_limit import InMemoryRateLimitStore, RateLimitPruner


def test_allows_up_to_the_limit():
    store = InMemoryRateLimitStore()
    for i in range(3):
        assert store.hit("auth:1.2.3.4", window=60, limit=3, now=100 + i) == (True, 0)

    allowed, retry_after = store.hit("auth:1.2.3.4", window=60, limit=3, now=110)
    assert not allowed
    # oldest hit at t=100 leaves the window at t=160
    assert retry_after == 51


def test_window_slides():
    store = InMemoryRateLimitStore()
    store.hit("k", window=60, limit=1, now=0)
    assert store.hit("k", window=60, limit=1, now=30)[0] is False
    assert store.hit("k", window=60, limit=1, now=61)[0] is True


def test_rejected_requests_are_not_counted():
    store = InMemoryRateLimitStore()
    store.hit("k", window=60, limit=1, now=0)
    for t in range(1, 50):
        store.hit("k", window=60, limit=1, now=t)
    assert store.hit("k", window=60, limit=1, now=60.5)[0] is True


def test_keys_are_independent():
    store = InMemoryRateLimitStore()
    store.hit("auth:a", window=60, limit=1, now=0)
    assert store.hit("auth:b", window=60, limit=1, now=0)[0] is True
    assert store.hit("booking:a", window=60, limit=1, now=0)[0] is True


def test_prune_drops_idle_keys():
    store = InMemoryRateLimitStore()
    store.hit("old", window=60, limit=5, now=0)
    store.hit("fresh", window=60, limit=5, now=3500)

    removed = store.prune(max_age=3600, now=3700)

    assert removed == 1
    assert len(store) == 1


def test_reset():
    store = InMemoryRateLimitStore()
    store.hit("k", window=60, limit=5)
    store.reset()
    assert len(store) == 0


def test_pruner_start_stop():
    store = InMemoryRateLimitStore()
    store.hit("stale", window=60, limit=5, now=0)
    pruner = RateLimitPruner(store, interval=0.01, max_age=1)

    pruner.start()
    assert pruner.running
    deadline = time.time() + 2
    while len(store) and time.time() < deadline:
        time.sleep(0.01)
    pruner.stop()

    assert not pruner.running
    assert len(store) == 0
