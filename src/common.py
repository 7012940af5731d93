"""Common utilities and types for cluster bootstrap automation."""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from errors import OperationTimeoutError

logger = logging.getLogger(__name__)

# Status markers for per-step output lines
PASS_MARK = '✓'
WARN_MARK = '⚠'
FAIL_MARK = '✗'


@dataclass
class ActionResult:
    """Result returned by a lifecycle step."""
    success: bool
    message: str = ''
    duration: float = 0.0


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None,
    input_text: Optional[str] = None,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            input=input_text,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except FileNotFoundError:
        return 127, '', f'Command not found: {cmd[0]}'


def wait_until(
    check: Callable[[], bool],
    timeout: float,
    interval: float,
    description: str = 'condition',
    raise_on_timeout: bool = False,
) -> bool:
    """Poll check() every interval seconds until it returns True or timeout elapses.

    Returns:
        True if the condition was met, False on timeout.

    Raises:
        OperationTimeoutError: on timeout when raise_on_timeout is set.
    """
    logger.debug(f"Waiting for {description} (timeout {timeout}s, interval {interval}s)")
    start = time.time()
    while True:
        if check():
            return True
        elapsed = time.time() - start
        if elapsed >= timeout:
            break
        time.sleep(min(interval, max(timeout - elapsed, 0)))
    message = f"Timed out after {timeout}s waiting for {description}"
    if raise_on_timeout:
        raise OperationTimeoutError(message)
    logger.warning(message)
    return False


def status_line(status: str, message: str) -> str:
    """Format a per-step status line (pass/warn/fail)."""
    mark = {'pass': PASS_MARK, 'warn': WARN_MARK, 'fail': FAIL_MARK}.get(status, ' ')
    return f"  {mark} {message}"
