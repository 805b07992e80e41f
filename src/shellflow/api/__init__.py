# API package

from shellflow.api.app import WorkflowAPI
from shellflow.api.models import ActionResponse, ErrorResponse, HealthResponse
from shellflow.api.stream import QueueSubscriber

__all__ = [
    "ActionResponse",
    "ErrorResponse",
    "HealthResponse",
    "QueueSubscriber",
    "WorkflowAPI",
]
