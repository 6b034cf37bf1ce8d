"""API schema package."""

from policy_intake.api.schemas.policies import (
    BatchResponse,
    DuplicateEventResponse,
    FileStatusResponse,
    PolicyResponse,
    QueuedBatchResponse,
    RecordFailureResponse,
)

__all__ = [
    "BatchResponse",
    "DuplicateEventResponse",
    "FileStatusResponse",
    "PolicyResponse",
    "QueuedBatchResponse",
    "RecordFailureResponse",
]
