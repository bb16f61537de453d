from .broker import Delivery, RedisBroker
from .models import QueueMessage
from .retry_policy import Retry, RetryPolicy, TerminalFailure, decide

__all__ = [
    "Delivery",
    "RedisBroker",
    "QueueMessage",
    "Retry",
    "RetryPolicy",
    "TerminalFailure",
    "decide",
]
