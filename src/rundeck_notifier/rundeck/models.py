# rundeck/models.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import quote, urljoin


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"
    OTHER = "other"

    @classmethod
    def from_api(cls, value: Optional[str]) -> ExecutionStatus:
        """Map a Rundeck status string ("failed-with-retry", "timedout", ...) onto the enum."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.OTHER


def _unixtime(data: Dict[str, Any], key: str) -> Optional[float]:
    # Rundeck reports dates as {"unixtime": <millis>, "date": "<iso>"}
    stamp = data.get(key)
    if isinstance(stamp, dict) and stamp.get("unixtime") is not None:
        return float(stamp["unixtime"]) / 1000.0
    return None


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "unknown time"
    total = int(round(seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


@dataclass
class RundeckJob:
    """A job definition hosted on Rundeck."""
    id: str
    name: str
    project: str
    group: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RundeckJob:
        """Create RundeckJob from a `job/{id}/info` or job list entry."""
        return cls(
            id=data["id"],
            name=data["name"],
            project=data.get("project") or "",
            group=data.get("group") or "",
            description=data.get("description") or "",
        )

    @property
    def full_name(self) -> str:
        if self.group:
            return f"{self.group}/{self.name}"
        return self.name

    def show_url(self, base_url: str) -> str:
        """Link to the job page on the Rundeck web UI."""
        base = base_url if base_url.endswith("/") else base_url + "/"
        return urljoin(base, f"project/{quote(self.project, safe='')}/job/show/{quote(self.id, safe='')}")


@dataclass
class Execution:
    """Read-only snapshot of a Rundeck execution, refreshed by polling."""
    id: int
    url: str
    status: ExecutionStatus
    raw_status: str = ""
    started_at: Optional[float] = None  # epoch seconds
    ended_at: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Execution:
        """Create Execution from a Rundeck execution response."""
        raw_status = data.get("status") or ""
        return cls(
            id=int(data["id"]),
            url=data.get("permalink") or data.get("href") or "",
            status=ExecutionStatus.from_api(raw_status),
            raw_status=raw_status,
            started_at=_unixtime(data, "date-started"),
            ended_at=_unixtime(data, "date-ended"),
        )

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.ended_at is None:
            return None
        return max(0.0, self.ended_at - self.started_at)

    @property
    def status_label(self) -> str:
        if self.status is ExecutionStatus.OTHER and self.raw_status:
            return self.raw_status.upper()
        return self.status.name
