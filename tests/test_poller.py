import time

from rolling_upgrade.bench.poller import await_until


def test_returns_true_once_predicate_holds():
    calls = []

    def predicate():
        calls.append(1)
        return len(calls) >= 3

    assert await_until(predicate, budget=5, interval=0) is True
    assert len(calls) == 3


def test_returns_false_when_budget_exhausted():
    started = time.monotonic()
    assert await_until(lambda: False, budget=0.2, interval=0.05) is False
    # the last sleep that still fits ends within the budget
    assert 0.15 <= time.monotonic() - started < 0.4


def test_zero_budget_still_tries_once():
    calls = []

    def predicate():
        calls.append(1)
        return False

    assert await_until(predicate, budget=0, interval=0) is False
    assert calls == [1]


def test_predicate_errors_count_as_false_attempts():
    calls = []

    def predicate():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("node restarting")
        return True

    assert await_until(predicate, budget=5, interval=0) is True
    assert len(calls) == 3


def test_persistent_errors_end_in_false_not_raise():
    def predicate():
        raise RuntimeError("boom")

    assert await_until(predicate, budget=0.1, interval=0.01) is False


def test_slow_predicate_does_not_overrun_budget():
    calls = []

    def predicate():
        calls.append(1)
        time.sleep(0.15)
        return False

    started = time.monotonic()
    assert await_until(predicate, budget=0.2, interval=0.15) is False
    # a second attempt would start at 0.3s, past the budget
    assert calls == [1]
    assert time.monotonic() - started < 0.3
