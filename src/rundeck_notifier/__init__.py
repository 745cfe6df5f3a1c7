from .build import BuildContext, BuildResult
from .config import RemoteSite, SiteRegistry, StepConfig, resolve_client
from .notifier import StepOutcome, Verdict, notify

__all__ = [
    "notify",
    "BuildContext",
    "BuildResult",
    "RemoteSite",
    "SiteRegistry",
    "StepConfig",
    "StepOutcome",
    "Verdict",
    "resolve_client",
]
