"""Console output formatting utilities for rundeck-notifier."""

from __future__ import annotations

import sys
from typing import Optional, TextIO


class Console:
    """Centralized build-log output."""

    def __init__(
        self,
        debug: bool = False,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            out: Stream for the build log (defaults to the current sys.stdout)
            err: Stream for errors (defaults to the current sys.stderr)
        """
        self.debug = debug
        self._out = out
        self._err = err

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err or sys.stderr

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}", file=self.out)
        print("-" * len(title), file=self.out)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message, file=self.out)

    def print_warning(self, message: str) -> None:
        """Print a non-fatal problem."""
        print(f"WARNING: {message}", file=self.out)

    def print_failure(self, message: str) -> None:
        """Print the single line explaining why a notification failed."""
        print(message, file=self.out)

    def print_execution(
        self,
        execution_id: int,
        url: str,
        status: str,
    ) -> None:
        """Print the execution that was just started."""
        print(
            f"Notification succeeded ! Execution #{execution_id}, at {url} (status : {status})",
            file=self.out,
        )

    def print_execution_complete(
        self,
        execution_id: int,
        status: str,
        duration: str,
    ) -> None:
        """Print execution completion message."""
        print(
            f"Rundeck execution #{execution_id} finished in {duration}, with status : {status}",
            file=self.out,
        )

    def print_sites(self, sites: list[tuple[str, str, str]]) -> None:
        """Print configured sites as (name, url, auth) rows."""
        if not sites:
            print("No Rundeck site configured.", file=self.out)
            return
        width = max(len(name) for name, _url, _auth in sites)
        for name, url, auth in sites:
            print(f"  {name.ljust(width)}  {url}  ({auth})", file=self.out)

    def print_validation(self, ok: bool, message: str) -> None:
        """Print the result of a connection or job check."""
        if ok:
            print(f"OK: {message}", file=self.out)
        else:
            print(f"ERROR: {message}", file=self.err)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=self.err)
        print(f"{message}", file=self.err)
        if details:
            for detail in details:
                print(f"  {detail}", file=self.err)
        if suggestion:
            print(f"\n{suggestion}", file=self.err)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=self.err)
        else:
            print(f"Error: {exc}", file=self.err)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=self.err)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
