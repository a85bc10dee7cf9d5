import random
import threading
import time

import pytest

from portswitch.model.Core.ActiveRoute import ActiveRoute, ExpiryScheduler


@pytest.fixture
def route():
    active = ActiveRoute()
    yield active
    active.close()


def test_get_is_empty_until_set(route):
    assert route.get() == ""
    route.set("route-a")
    assert route.get() == "route-a"


def test_empty_id_is_stored_as_is(route):
    route.set("route-a")
    route.set("")
    assert route.get() == ""


def test_no_expiry_without_lifetime(route):
    route.set("route-a")
    assert route.pending_expiries() == 0
    time.sleep(0.2)
    assert route.get() == "route-a"


def test_clear_if_unchanged_only_clears_matching_id(route):
    route.set("route-a")
    assert route.clear_if_unchanged("route-b") is False
    assert route.get() == "route-a"
    assert route.clear_if_unchanged("route-a") is True
    assert route.get() == ""


def test_clear_if_unchanged_checks_generation(route):
    first = route.set("route-a")
    second = route.set("route-a")
    assert second == first + 1
    assert route.clear_if_unchanged("route-a", first) is False
    assert route.get() == "route-a"
    assert route.clear_if_unchanged("route-a", second) is True


def test_selection_expires_after_lifetime():
    route = ActiveRoute(lifetime=0.2)
    try:
        route.set("route-a")
        assert route.get() == "route-a"
        time.sleep(0.5)
        assert route.get() == ""
    finally:
        route.close()


def test_newer_set_supersedes_pending_expiry():
    route = ActiveRoute(lifetime=0.5)
    try:
        route.set("route-a")
        time.sleep(0.25)
        route.set("route-b")
        # route-a's expiry fires around here and must not touch route-b
        time.sleep(0.35)
        assert route.get() == "route-b"
        time.sleep(0.4)
        assert route.get() == ""
    finally:
        route.close()


def test_resetting_same_id_extends_its_lifetime():
    route = ActiveRoute(lifetime=0.5)
    try:
        route.set("route-a")
        time.sleep(0.25)
        route.set("route-a")
        time.sleep(0.35)
        assert route.get() == "route-a"
        time.sleep(0.4)
        assert route.get() == ""
    finally:
        route.close()


def test_one_pending_expiry_per_set():
    route = ActiveRoute(lifetime=60)
    try:
        for i in range(5):
            route.set(f"route-{i}")
        assert route.pending_expiries() == 5
    finally:
        route.close()
    assert route.pending_expiries() == 0


def test_scheduler_runs_callbacks_in_deadline_order():
    scheduler = ExpiryScheduler()
    fired = []
    done = threading.Event()
    try:
        scheduler.schedule(0.2, lambda: (fired.append("late"), done.set()))
        scheduler.schedule(0.05, fired.append, "early")
        assert done.wait(2)
        assert fired == ["early", "late"]
    finally:
        scheduler.close()


def test_scheduler_survives_failing_callback():
    scheduler = ExpiryScheduler()
    done = threading.Event()
    try:
        scheduler.schedule(0.01, lambda: 1 / 0)
        scheduler.schedule(0.05, done.set)
        assert done.wait(2)
    finally:
        scheduler.close()


def test_concurrent_set_and_get_never_observe_foreign_values():
    route = ActiveRoute(lifetime=0.01)
    values = [f"route-{i}" for i in range(8)]
    observed = []
    observed_lock = threading.Lock()
    start = threading.Barrier(24)

    def writer():
        start.wait()
        for _ in range(300):
            route.set(random.choice(values))

    def reader():
        start.wait()
        seen = set()
        for _ in range(300):
            seen.add(route.get())
        with observed_lock:
            observed.extend(seen)

    threads = [threading.Thread(target=writer) for _ in range(12)]
    threads += [threading.Thread(target=reader) for _ in range(12)]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)
        assert set(observed) <= set(values) | {""}
        assert route.get() in set(values) | {""}
    finally:
        route.close()
