# jobs.py
# Job identifiers are either a Rundeck job ID (UUID or legacy number) or a
# reference of the form "project:[group/]*name".

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .rundeck.api_client import RundeckClient
from .rundeck.models import RundeckJob

# The middle group is lazy and the name is the last path segment:
# "ops:a/b/deploy" -> project "ops", group "a/b", name "deploy"
JOB_REFERENCE_PATTERN = re.compile(r"^([^:]+?):(.*?)\/?([^/]+)$")


@dataclass(frozen=True)
class JobReference:
    project: str
    group_path: str
    name: str


def parse_job_reference(identifier: str) -> Optional[JobReference]:
    """Return the (project, group, name) reference, or None if this is a plain job ID."""
    match = JOB_REFERENCE_PATTERN.search(identifier)
    if not match:
        return None
    project, group_path, name = match.groups()
    return JobReference(project=project, group_path=group_path, name=name)


def find_job_id(identifier: str, client: RundeckClient) -> str:
    """
    Return the Rundeck job ID to run.

    A "project:group/name" reference is looked up remotely; anything else is
    already an ID and is returned as-is without calling Rundeck.

    Raises:
        JobNotFoundError: If the reference matches no job
        RundeckApiError: On transport or authentication failures
    """
    ref = parse_job_reference(identifier)
    if ref is None:
        return identifier
    return client.find_job(ref.project, ref.group_path, ref.name).id


def find_job(identifier: str, client: RundeckClient) -> RundeckJob:
    """Fetch the job details for either form of identifier."""
    ref = parse_job_reference(identifier)
    if ref is None:
        return client.get_job(identifier)
    return client.find_job(ref.project, ref.group_path, ref.name)
