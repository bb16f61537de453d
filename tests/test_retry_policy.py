import pytest

from src.translation_queue.retry_policy import Retry, RetryPolicy, TerminalFailure, decide


def test_exponential_backoff_doubles_and_caps():
    policy = RetryPolicy(strategy="exponential", base_delay=2, max_delay=10)

    assert [policy.backoff(n) for n in range(1, 6)] == [2, 4, 8, 10, 10]


def test_fixed_backoff_is_constant():
    policy = RetryPolicy(strategy="fixed", base_delay=3, max_delay=60)

    assert {policy.backoff(n) for n in range(1, 10)} == {3}


@pytest.mark.parametrize("strategy", ["fixed", "exponential"])
def test_backoff_never_decreases(strategy):
    policy = RetryPolicy(strategy=strategy, base_delay=1.5, max_delay=45)
    delays = [policy.backoff(n) for n in range(1, 50)]

    assert delays == sorted(delays)


def test_huge_attempt_counts_stay_capped():
    policy = RetryPolicy(base_delay=1, max_delay=30)

    assert policy.backoff(10_000) == 30


def test_decide_retries_below_ceiling():
    policy = RetryPolicy(strategy="exponential", base_delay=1, max_delay=60)

    assert policy.decide(1, 3) == Retry(delay=1)
    assert policy.decide(2, 3) == Retry(delay=2)


def test_decide_terminal_at_ceiling():
    assert decide(3, 3) == TerminalFailure(attempts=3)
    assert decide(5, 3) == TerminalFailure(attempts=5)


def test_single_attempt_budget_fails_immediately():
    assert isinstance(decide(1, 1), TerminalFailure)


def test_rejects_unknown_strategy():
    with pytest.raises(ValueError):
        RetryPolicy(strategy="linear")
