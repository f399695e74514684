"""Shell execution helpers with explicit timeout handling and secret redaction."""
from __future__ import annotations

import logging
import subprocess
from typing import Iterable, Sequence

from ..schemas.secret import MASK

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3600


class ShellCommandError(RuntimeError):
    """Raised when a subprocess cannot be executed successfully."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        message: str,
        returncode: int | None,
        stdout: str,
        stderr: str,
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def redact(text: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


def format_command(command: Sequence[str], secrets: Iterable[str] = ()) -> str:
    hidden = list(secrets)
    return " ".join(redact(part, hidden) for part in command)


def _as_text(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def run(
    command: Sequence[str],
    *,
    timeout: int = DEFAULT_TIMEOUT,
    secrets: Iterable[str] = (),
) -> tuple[int, str, str]:
    """Execute a command and return (returncode, stdout, stderr).

    ``secrets`` are masked in logged commands and in raised error messages.
    Output captured from the process, including partial output on timeout, is
    passed back untouched.
    """
    hidden = list(secrets)
    shown = [redact(part, hidden) for part in command]

    LOGGER.debug("Running: %s", format_command(command, hidden))
    try:
        completed = subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ShellCommandError(
            command=shown,
            message=f"Executable '{command[0]}' not found in PATH. Install it or adjust PATH.",
            returncode=None,
            stdout="",
            stderr="",
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise ShellCommandError(
            command=shown,
            message=f"Command '{command[0]}' timed out after {timeout} seconds.",
            returncode=None,
            stdout=_as_text(exc.stdout),
            stderr=_as_text(exc.stderr),
        ) from exc
    except OSError as exc:
        raise ShellCommandError(
            command=shown,
            message=f"Failed to execute command '{command[0]}': {redact(str(exc), hidden)}",
            returncode=None,
            stdout="",
            stderr=redact(str(exc), hidden),
        ) from exc

    return completed.returncode, completed.stdout, completed.stderr


__all__ = ["ShellCommandError", "run", "redact", "format_command", "DEFAULT_TIMEOUT"]
