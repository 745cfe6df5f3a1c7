from .api_client import (
    JobNotFoundError,
    LoginFailure,
    RundeckApiError,
    RundeckClient,
    TokenFailure,
    UnreachableError,
)
from .models import Execution, ExecutionStatus, RundeckJob

__all__ = [
    "RundeckClient",
    "RundeckApiError",
    "LoginFailure",
    "TokenFailure",
    "UnreachableError",
    "JobNotFoundError",
    "Execution",
    "ExecutionStatus",
    "RundeckJob",
]
