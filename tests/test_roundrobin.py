import threading
from collections import Counter

from lbgate.backends import Backend
from lbgate.roundrobin import RoundRobin


def _pool(n):
    return [Backend(f"http://localhost:{9000 + i}") for i in range(n)]


def test_first_pick_follows_start_index():
    pool = _pool(3)
    rr = RoundRobin(0)
    assert rr.next_backend(pool) is pool[1]


def test_cycle_visits_every_backend_once_per_round():
    pool = _pool(4)
    rr = RoundRobin()
    for _ in range(3):
        picks = [rr.next_backend(pool) for _ in range(len(pool))]
        assert {id(b) for b in picks} == {id(b) for b in pool}


def test_consecutive_picks_differ():
    pool = _pool(3)
    rr = RoundRobin(1)
    picks = [rr.next_backend(pool) for _ in range(10)]
    assert all(a is not b for a, b in zip(picks, picks[1:]))


def test_dead_backends_are_skipped():
    pool = _pool(3)
    pool[1].alive = False
    rr = RoundRobin(0)
    picks = [rr.next_backend(pool) for _ in range(6)]
    assert all(b.alive for b in picks)
    assert pool[1] not in picks
    assert {id(b) for b in picks} == {id(pool[0]), id(pool[2])}


def test_skip_continues_after_chosen_backend():
    pool = _pool(3)
    pool[1].alive = False
    rr = RoundRobin(0)
    first = rr.next_backend(pool)
    second = rr.next_backend(pool)
    assert first is pool[2]
    assert second is pool[0]


def test_all_dead_returns_none():
    pool = _pool(3)
    for backend in pool:
        backend.alive = False
    assert RoundRobin().next_backend(pool) is None


def test_empty_pool_returns_none():
    assert RoundRobin().next_backend([]) is None


def test_single_backend_always_chosen():
    pool = _pool(1)
    rr = RoundRobin(5)
    assert all(rr.next_backend(pool) is pool[0] for _ in range(5))


def test_concurrent_calls_share_load_evenly():
    pool = _pool(3)
    rr = RoundRobin()
    counts = Counter()
    lock = threading.Lock()

    def worker():
        local = Counter(id(rr.next_backend(pool)) for _ in range(75))
        with lock:
            counts.update(local)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(counts.values()) == 300
    assert set(counts) == {id(b) for b in pool}
    assert len(set(counts.values())) == 1