# build.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .git_facts.git import changelog


class BuildResult(str, Enum):
    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    NOT_BUILT = "NOT_BUILT"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class ChangeEntry:
    """One changelog entry of a build."""
    author: str
    message: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ChangeEntry:
        return cls(author=data.get("author") or "unknown", message=data.get("message") or "")


@dataclass
class UpstreamBuild:
    """A build that caused this one, with its own changelog."""
    display_name: str
    changes: List[ChangeEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> UpstreamBuild:
        return cls(
            display_name=data["display_name"],
            changes=[ChangeEntry.from_dict(c) for c in data.get("changes", [])],
        )


@dataclass(frozen=True)
class ExecutionBadge:
    """Link to a Rundeck execution, shown next to the build."""
    url: str
    display_name: str = "Rundeck Execution Result"

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "display_name": self.display_name}


@dataclass
class BuildContext:
    """
    What the CI host knows about the build being notified.

    The notifier reads the result, changelogs, environment and artifacts, and
    writes badges back. Nothing else is shared with the host.
    """
    display_name: str
    result: BuildResult = BuildResult.SUCCESS
    changes: List[ChangeEntry] = field(default_factory=list)
    upstream: List[UpstreamBuild] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    artifacts: List[str] = field(default_factory=list)
    badges: List[ExecutionBadge] = field(default_factory=list)

    def environment(self) -> Dict[str, str]:
        return dict(self.env)

    def add_badge(self, url: str) -> ExecutionBadge:
        badge = ExecutionBadge(url=url)
        self.badges.append(badge)
        return badge

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BuildContext:
        """Create BuildContext from its JSON representation."""
        return cls(
            display_name=data.get("display_name") or "build",
            result=BuildResult(str(data.get("result", "SUCCESS")).upper()),
            changes=[ChangeEntry.from_dict(c) for c in data.get("changes", [])],
            upstream=[UpstreamBuild.from_dict(u) for u in data.get("upstream", [])],
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            artifacts=list(data.get("artifacts", [])),
        )

    @classmethod
    def load(cls, path: str | Path) -> BuildContext:
        build_path = Path(path).expanduser()
        if not build_path.exists():
            raise FileNotFoundError(f"Build file not found: {build_path}")
        return cls.from_dict(json.loads(build_path.read_text(encoding="utf-8")))

    @classmethod
    def from_workspace(
        cls,
        display_name: Optional[str] = None,
        artifacts_dir: Optional[str | Path] = None,
        changes_since: Optional[str] = None,
    ) -> BuildContext:
        """
        Assemble a context for a build running in this process.

        The environment is the process environment, artifacts are the names of
        the files under artifacts_dir, and the changelog is
        `git log changes_since..HEAD` when a ref is given.
        """
        artifacts: List[str] = []
        if artifacts_dir:
            root = Path(artifacts_dir)
            if not root.is_dir():
                raise FileNotFoundError(f"Artifacts directory not found: {root}")
            # file names only, ordered by their path in the directory
            artifacts = [p.name for p in sorted(root.rglob("*")) if p.is_file()]

        changes: List[ChangeEntry] = []
        if changes_since:
            changes = [ChangeEntry(author=a, message=m) for a, m in changelog(changes_since)]

        env = dict(os.environ)
        return cls(
            display_name=display_name or env.get("BUILD_TAG") or Path.cwd().name,
            changes=changes,
            env=env,
            artifacts=artifacts,
        )
