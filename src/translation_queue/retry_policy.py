from dataclasses import dataclass
from typing import Union

FIXED = "fixed"
EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class TerminalFailure:
    attempts: int


Decision = Union[Retry, TerminalFailure]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Decides between another attempt and a terminal failure.

    Pure: no clock, no I/O. The delay never decreases as attempts grow.
    """

    strategy: str = EXPONENTIAL
    base_delay: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self):
        if self.strategy not in (FIXED, EXPONENTIAL):
            raise ValueError(f"Unknown retry strategy: {self.strategy}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")

    def backoff(self, attempts: int) -> float:
        """
        Delay before the next delivery after `attempts` failed attempts.

        exponential: base, 2*base, 4*base, ... capped at max_delay
        fixed:       base every time, capped at max_delay
        """
        if attempts < 1:
            return 0.0

        if self.strategy == FIXED:
            delay = self.base_delay
        else:
            # Cap the exponent so huge attempt counts cannot overflow
            delay = self.base_delay * (2 ** min(attempts - 1, 32))

        return min(delay, self.max_delay)

    def decide(self, attempts: int, max_attempts: int) -> Decision:
        """
        Args:
            attempts: Failed attempts so far, including the one just made.
            max_attempts: Ceiling carried by the message.
        """
        if attempts >= max_attempts:
            return TerminalFailure(attempts=attempts)
        return Retry(delay=self.backoff(attempts))


def decide(attempts: int, max_attempts: int, policy: RetryPolicy = RetryPolicy()) -> Decision:
    return policy.decide(attempts, max_attempts)
