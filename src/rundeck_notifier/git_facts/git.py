# git.py
# Small, focused wrapper around the Git CLI.
# The notifier only needs the changelog of the build being notified, which
# the CI host would otherwise hand over; everything goes through _git().

from __future__ import annotations

import subprocess
from typing import List, Optional, Tuple

# Separators that cannot appear in author names or commit subjects
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["log", "--format=%H"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.
    """
    # Non-zero exit raises CalledProcessError; callers decide what to do with it.
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
    )
    return out.strip()


def changelog(since: str, head: str = "HEAD", cwd: Optional[str] = None) -> List[Tuple[str, str]]:
    """
    Return the commits in since..head as (author, message) pairs, newest first.

    This is the changelog a CI server shows for a build: what went in since
    the previously built revision.

    Args:
        since: Ref of the previous build (commit, branch, or tag)
        head: Ref being built (defaults to HEAD)
        cwd: Optional working directory inside the repository

    Returns:
        List of (author name, full commit message) tuples.
    """
    out = _git(
        ["log", f"--format=%an{_FIELD_SEP}%B{_RECORD_SEP}", f"{since}..{head}"],
        cwd=cwd,
    )
    if not out:
        return []

    entries = []
    for record in out.split(_RECORD_SEP):
        record = record.strip()
        if not record:
            continue
        author, _sep, message = record.partition(_FIELD_SEP)
        entries.append((author, message.strip()))
    return entries
