"""
Utility functions for the group size report.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the run
         "Failed to list mail-enabled groups: {e}"
- WARNING: Per-group failures, short selections
           "Member count lookup failed for group 'Sales': {e}"
- INFO: Progress messages, counts
        "Fetched 412 mail-enabled groups"
- DEBUG: Per-item detail
         "Group 'Sales' has 17 transitive members"
"""
import csv
import logging
import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, TypeVar

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .constants import AUTH_STATUS_CODES, M365_AUTH_ERROR_CODES

if TYPE_CHECKING:
    from rich.progress import TaskID

logger = logging.getLogger(__name__)

# Type variable for generic function decorator
F = TypeVar('F', bound=Callable[..., Any])


# =============================================================================
# Errors
# =============================================================================

class GroupReportError(Exception):
    """Base class for report errors."""


class InvalidArguments(GroupReportError):
    """Conflicting or malformed mode selection. Fatal, raised before any fetch."""


class ConnectionFailure(GroupReportError):
    """The directory session could not be established or was refused.

    Fatal, raised before any group is processed.
    """
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class EmptySelection(GroupReportError):
    """No groups matched the requested mode and cap. The run ends cleanly."""


class MissingIdentifier(GroupReportError):
    """A group record has no usable identifier. Recorded as an error row."""


class LookupFailure(GroupReportError):
    """The transitive member count call failed for one group. Recorded as an error row."""
    def __init__(self, reason: str, group_id: str = ""):
        self.reason = reason
        self.group_id = group_id
        super().__init__(reason)


def is_auth_error(exc: Exception) -> bool:
    """
    Check if an exception represents an authentication/authorization error.

    Detects:
    - Graph ODataError with an auth-related error code or a 401/403 status
    - azure-identity ClientAuthenticationError (bad tenant, client or secret)
    """
    exc_type_name = type(exc).__name__

    if exc_type_name == 'ClientAuthenticationError':
        return True

    if exc_type_name == 'ODataError':
        if getattr(exc, 'response_status_code', None) in AUTH_STATUS_CODES:
            return True
        error = getattr(exc, 'error', None)
        if error:
            error_code = getattr(error, 'code', '')
            return error_code in M365_AUTH_ERROR_CODES

    return False


def describe_error(exc: Exception) -> str:
    """Short human-readable reason for an exception, preferring the Graph error message."""
    error = getattr(exc, 'error', None)
    message = getattr(error, 'message', None) if error else None
    if message:
        code = getattr(error, 'code', None)
        return f"{code}: {message}" if code else str(message)
    return str(exc) or type(exc).__name__


# =============================================================================
# Retry
# =============================================================================

def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 30,
) -> Callable[[F], F]:
    """
    Decorator for retrying transient API failures with exponential backoff.

    Auth errors are never retried. Works on both plain functions and
    coroutines (tenacity detects async callables).

    Example:
        @retry_with_backoff(max_attempts=5)
        async def get_page(url):
            ...
    """
    def decorator(func: F) -> F:
        return retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception(lambda e: not is_auth_error(e)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )(func)
    return decorator


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Progress tracker for per-group member count lookups.

    Uses a rich progress bar on a TTY and falls back to periodic plain
    print statements otherwise (e.g., when piping output).

    Usage:
        with ProgressTracker("Member counts", total_groups=len(groups)) as tracker:
            for group in groups:
                tracker.update_task(group.display_name)
                ...
                tracker.complete_group(failed=False)
    """

    def __init__(
        self,
        description: str,
        total_groups: int = 0,
        show_progress: bool = True,
        plain_every: int = 100,
    ):
        self.description = description
        self.total_groups = total_groups
        self.show_progress = show_progress and sys.stdout.isatty()
        self.plain_every = max(1, plain_every)

        # Counters
        self.completed_groups = 0
        self.error_count = 0
        self.current_task = ""

        self._console: Optional[Console] = None
        self._progress: Optional[Progress] = None
        self._main_task: Optional["TaskID"] = None
        self._use_rich = self.show_progress

    def __enter__(self):
        if self._use_rich:
            self._console = Console()
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self._console,
                transient=False,
            )
            self._main_task = self._progress.add_task(self.description, total=self.total_groups or 1)
            self._progress.start()
        else:
            print(f"\n{'='*60}")
            print(f"{self.description} Starting")
            print(f"{'='*60}")
            print(f"Groups: {self.total_groups}")
            print()

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._use_rich:
            assert self._progress is not None
            self._progress.stop()
        else:
            print(f"  Processed {self.completed_groups}/{self.total_groups} groups "
                  f"({self.error_count} errors)")
        return False

    def update_task(self, task_description: str):
        """Update the current task being performed."""
        self.current_task = task_description
        if self._use_rich:
            assert self._progress is not None
            assert self._main_task is not None
            self._progress.update(
                self._main_task,
                description=f"{self.description}: {task_description}"
            )

    def complete_group(self, failed: bool = False):
        """Mark one group as processed."""
        self.completed_groups += 1
        if failed:
            self.error_count += 1
        if self._use_rich:
            assert self._progress is not None
            assert self._main_task is not None
            self._progress.update(self._main_task, advance=1)
        elif self.completed_groups % self.plain_every == 0:
            print(f"  Processed {self.completed_groups}/{self.total_groups} groups...")


# =============================================================================
# Time, Logging and Output
# =============================================================================

def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup logging configuration with console and optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        output_dir: If provided, also write logs to a file in this directory

    Returns:
        Logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Console handler (stderr)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(output_dir, f"gsr_log_{timestamp}.log")

        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to: {log_file}")

    return logging.getLogger(__name__)


def write_csv(data: List[Dict], filepath: str, fieldnames: Optional[List[str]] = None) -> None:
    """
    Write data to a CSV file.

    The file is written to a temporary name in the same directory and then
    renamed, so readers never see a partially written report. A header-only
    file is written when data is empty but fieldnames are given.
    """
    if not fieldnames:
        if not data:
            return
        fieldnames = list(data[0].keys())

    directory = os.path.dirname(os.path.abspath(filepath))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix=".gsr_", suffix=".csv.tmp", dir=directory)
    try:
        with os.fdopen(fd, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(data)
        os.replace(tmp_path, filepath)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
