"""
Task queue module.
Contains the lease-based queue and its lease acquisition strategies.
"""

from taskhub.queue.claims import (
    ConditionalPutAcquirer,
    LeaseAcquirer,
    NonceVerifiedAcquirer,
    build_acquirer,
)
from taskhub.queue.task_queue import TaskQueue

__all__ = [
    "TaskQueue",
    "LeaseAcquirer",
    "NonceVerifiedAcquirer",
    "ConditionalPutAcquirer",
    "build_acquirer",
]
