import pytest

from a11y_auditor.errors import MaxRetriesExceededError, ScanCancelledError
from a11y_auditor.utils.retry import linear, with_retry


def test_linear_wait_generator_starts_at_twice_the_base():
    gen = linear(base=2.0)
    gen.send(None)
    assert [next(gen) for _ in range(3)] == [4.0, 6.0, 8.0]


def test_succeeds_on_third_attempt_with_third_result():
    outcomes = [RuntimeError("one"), RuntimeError("two"), "third"]
    calls = []

    def flaky():
        calls.append(1)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    retried = []
    result = with_retry(flaky, max_retries=3, delay_ms=0, on_retry=lambda n, e: retried.append((n, str(e))))
    assert result == "third"
    assert len(calls) == 3
    assert retried == [(1, "one"), (2, "two")]


def test_exhaustion_raises_max_retries_exceeded():
    calls = []

    def always_fails():
        calls.append(1)
        raise ValueError("axe not loaded")

    with pytest.raises(MaxRetriesExceededError) as exc_info:
        with_retry(always_fails, max_retries=3, delay_ms=0)

    assert len(calls) == 3
    assert exc_info.value.context["attempts"] == 3
    assert "axe not loaded" in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_cancellation_is_not_retried():
    calls = []

    def cancelled():
        calls.append(1)
        raise ScanCancelledError("scanning", 5)

    with pytest.raises(ScanCancelledError):
        with_retry(cancelled, max_retries=3, delay_ms=0)
    assert len(calls) == 1


def test_waits_follow_linear_schedule(mocker):
    sleep = mocker.patch("backoff._sync.time.sleep")
    outcomes = [RuntimeError("a"), RuntimeError("b"), "ok"]

    def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert with_retry(flaky, max_retries=3, delay_ms=2000) == "ok"
    assert [c.args[0] for c in sleep.call_args_list] == [4.0, 6.0]
