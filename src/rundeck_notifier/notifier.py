# notifier.py
# Run a Rundeck job after a build, optionally wait for it, and turn the
# execution status into a pass/fail for the build step.

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .build import BuildContext, BuildResult
from .config import ConfigurationError, RemoteSite, StepConfig, resolve_client
from .jobs import find_job_id
from .options import expand_options
from .rundeck.api_client import (
    JobNotFoundError,
    LoginFailure,
    RundeckApiError,
    RundeckClient,
    TokenFailure,
    UnreachableError,
)
from .rundeck.models import Execution, ExecutionStatus, format_duration
from .settings import POLL_INTERVAL
from .ui.console import Console, get_console


class Verdict(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    # the wait was cut short while the execution was still running
    INTERRUPTED = "interrupted"

    @property
    def ok(self) -> bool:
        return self is not Verdict.FAILURE


@dataclass
class PollResult:
    execution: Execution
    waited: bool
    interrupted: bool = False


@dataclass
class StepOutcome:
    """
    What the notifier reports back to the build.

    deferred=True means the step ran after the build result was final, so a
    failure here is reported but cannot change that result.
    """
    verdict: Verdict
    notified: bool
    deferred: bool
    execution: Optional[Execution] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.verdict.ok

    def final_result(self, build_result: BuildResult) -> BuildResult:
        if self.ok or self.deferred:
            return build_result
        return BuildResult.FAILURE

    def apply_to(self, build: BuildContext) -> BuildResult:
        build.result = self.final_result(build.result)
        return build.result

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "verdict": self.verdict.value,
            "ok": self.ok,
            "notified": self.notified,
            "deferred": self.deferred,
            "message": self.message,
            "execution": None,
        }
        if self.execution is not None:
            data["execution"] = {
                "id": self.execution.id,
                "url": self.execution.url,
                "status": self.execution.status_label,
                "duration": self.execution.duration,
            }
        return data


# ----------------------------------------------------------------------
# Tag gating
# ----------------------------------------------------------------------

def should_notify(build: BuildContext, tag: Optional[str], console: Optional[Console] = None) -> bool:
    """
    Decide whether this build notifies Rundeck.

    Without a tag, always. With a tag, only if it appears (case-insensitive)
    in a changelog message of this build or of one of its upstream builds.
    """
    console = console or get_console()

    if not tag or not tag.strip():
        console.print_info("Notifying Rundeck...")
        return True

    needle = tag.lower()

    for entry in build.changes:
        if needle in entry.message.lower():
            console.print_info(f"Found {tag} in changelog (from {entry.author}) - Notifying Rundeck...")
            return True

    for upstream in build.upstream:
        for entry in upstream.changes:
            if needle in entry.message.lower():
                console.print_info(
                    f"Found {tag} in changelog (from {entry.author}) in upstream build "
                    f"({upstream.display_name}) - Notifying Rundeck..."
                )
                return True

    console.print_info(f"Tag {tag} not found in any changelog - not notifying Rundeck.")
    return False


# ----------------------------------------------------------------------
# Trigger, poll, gate
# ----------------------------------------------------------------------

def trigger_and_wait(
    client: RundeckClient,
    job_id: str,
    options: Dict[str, str],
    node_filters: Dict[str, str],
    build: BuildContext,
    *,
    wait: bool,
    console: Optional[Console] = None,
    poll_interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """
    Start one execution and, if asked, poll it until it stops running.

    The run call is made exactly once. The execution link is attached to the
    build as soon as the execution exists, whether or not we wait.

    Raises:
        RundeckApiError: From the run call or any status refresh
    """
    console = console or get_console()

    execution = client.trigger_job(job_id, options, node_filters)
    console.print_execution(execution.id, execution.url, execution.status_label)
    build.add_badge(execution.url)

    if not wait:
        return PollResult(execution=execution, waited=False)

    console.print_info("Waiting for Rundeck execution to finish...")
    interrupted = False
    while execution.status is ExecutionStatus.RUNNING:
        try:
            sleep(poll_interval)
        except KeyboardInterrupt as e:
            console.print_warning(f"Oops, interrupted ! {e}".rstrip())
            interrupted = True
            break
        execution = client.get_execution(execution.id)

    console.print_execution_complete(
        execution.id,
        execution.status_label,
        format_duration(execution.duration),
    )
    return PollResult(execution=execution, waited=True, interrupted=interrupted)


def gate(execution: Execution, *, interrupted: bool = False) -> Verdict:
    """Map the last known execution status to the step verdict."""
    status = execution.status
    if status is ExecutionStatus.SUCCEEDED:
        return Verdict.SUCCESS
    if status in (ExecutionStatus.FAILED, ExecutionStatus.ABORTED):
        return Verdict.FAILURE
    if status is ExecutionStatus.RUNNING and interrupted:
        return Verdict.INTERRUPTED
    return Verdict.SUCCESS


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def notify(
    step: StepConfig,
    site: RemoteSite,
    build: BuildContext,
    *,
    console: Optional[Console] = None,
    client: Optional[RundeckClient] = None,
    make_client: Optional[Callable[[RemoteSite], RundeckClient]] = None,
    poll_interval: float = POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> StepOutcome:
    """
    Notify Rundeck for a finished build: run the configured job on the site.

    Every failure is written to the console as one line and returned as a
    FAILURE outcome; nothing is raised to the caller.

    Args:
        step: Job identifier, options, node filters, tag and wait/fail flags
        site: Rundeck site to talk to
        build: The build being notified (read, and given an execution badge)
        console: Build log (defaults to the global console)
        client: Pre-built client (tests); resolved from site when omitted
        make_client: Builds the client from the site (defaults to resolve_client);
            only called once the build is known to need a notification
        poll_interval: Seconds between status refreshes while waiting
        sleep: Sleep function used between refreshes
    """
    console = console or get_console()
    deferred = not step.fail_build_on_failure

    def _failed(message: str) -> StepOutcome:
        console.print_failure(message)
        return StepOutcome(Verdict.FAILURE, notified=False, deferred=deferred, message=message)

    def _skipped(message: str) -> StepOutcome:
        return StepOutcome(Verdict.SUCCESS, notified=False, deferred=deferred, message=message)

    if build.result is not BuildResult.SUCCESS:
        console.print_debug(f"Build result is {build.result.value}, Rundeck is not notified")
        return _skipped(f"Build result is {build.result.value}")

    if client is None:
        try:
            client = (make_client or resolve_client)(site)
        except ConfigurationError as e:
            return _failed(f"Rundeck configuration is not valid ! {e}")

    try:
        client.ping()
    except UnreachableError as e:
        console.print_debug(str(e))
        return _failed("Rundeck is not running !")

    if not should_notify(build, step.tag, console):
        return _skipped(f"Tag {step.tag} not found in changelog")

    identifier = step.job_identifier
    try:
        job_id = find_job_id(identifier, client)
    except JobNotFoundError as e:
        return _failed(f"Could not find a job with the identifier : {identifier} : {e}")
    except RundeckApiError as e:
        return _failed(f"Failed to get job with the identifier : {identifier} : {e}")

    options = expand_options(step.options, build.environment, build.artifacts, console)
    if options is None:
        return _failed("Configuration error : job options could not be parsed")
    node_filters = expand_options(step.node_filters, build.environment, build.artifacts, console)
    if node_filters is None:
        return _failed("Configuration error : node filters could not be parsed")

    try:
        poll = trigger_and_wait(
            client,
            job_id,
            options,
            node_filters,
            build,
            wait=step.wait_for_completion,
            console=console,
            poll_interval=poll_interval,
            sleep=sleep,
        )
    except LoginFailure as e:
        return _failed(f"Login failed on {client.url} : {e}")
    except TokenFailure as e:
        return _failed(f"Token auth failed on {client.url} : {e}")
    except RundeckApiError as e:
        return _failed(f"Error while talking to Rundeck's API at {client.url} : {e}")

    execution = poll.execution
    if not poll.waited:
        verdict = Verdict.SUCCESS
    else:
        verdict = gate(execution, interrupted=poll.interrupted)

    if verdict is Verdict.INTERRUPTED:
        console.print_warning(
            f"Stopped waiting while execution #{execution.id} was still running; "
            "its outcome is unknown"
        )

    return StepOutcome(
        verdict,
        notified=True,
        deferred=deferred,
        execution=execution,
        message=f"Execution #{execution.id} {execution.status_label}",
    )
