from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence


LOGGER = logging.getLogger(__name__)

MASK = "***"


@dataclass
class CommandResult:
    command: List[str]
    display: str
    return_code: int
    output: str
    ok: bool
    reason: Optional[str] = None

    @property
    def launched(self) -> bool:
        return self.reason not in {"empty-command", "missing-executable", "os-error"}


@dataclass
class CommandRunner:
    """
    Run external programs from an argument vector, never through a shell.

    Standard error is folded into standard output. Values listed in *secrets*
    are replaced with ``***`` in the display string and in captured output, so
    results can be logged as-is.
    """

    secrets: Sequence[str] = field(default_factory=tuple)

    def run(
        self,
        command: Iterable[str],
        *,
        secrets: Sequence[str] = (),
        expected_output: Optional[Path] = None,
        require_non_empty: bool = False,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        command_list = [str(part) for part in command]
        hidden = [value for value in (*self.secrets, *secrets) if value]
        display = self._mask(" ".join(command_list), hidden)

        if not command_list:
            return CommandResult(command_list, display, 127, "", ok=False, reason="empty-command")

        LOGGER.info("Executing: %s", display)
        try:
            completed = subprocess.run(
                command_list,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as exc:
            LOGGER.error("[missing-executable] command failed: %s", display)
            return CommandResult(
                command_list, display, 127, self._mask(str(exc), hidden), ok=False, reason="missing-executable"
            )
        except OSError as exc:
            LOGGER.error("[os-error] command failed: %s (%s)", display, self._mask(str(exc), hidden))
            return CommandResult(
                command_list,
                display,
                getattr(exc, "errno", 1) or 1,
                self._mask(str(exc), hidden),
                ok=False,
                reason="os-error",
            )

        output = self._mask(completed.stdout or "", hidden)
        reason = self._failure_reason(completed.returncode, expected_output, require_non_empty)
        return CommandResult(
            command=command_list,
            display=display,
            return_code=completed.returncode,
            output=output,
            ok=reason is None,
            reason=reason,
        )

    @staticmethod
    def _failure_reason(return_code: int, expected_output: Optional[Path], require_non_empty: bool) -> Optional[str]:
        if return_code != 0:
            return "non-zero-exit"
        if expected_output is None:
            return None
        if not expected_output.exists():
            return "missing-output"
        if require_non_empty and expected_output.stat().st_size == 0:
            return "empty-output"
        return None

    @staticmethod
    def _mask(text: str, secrets: Sequence[str]) -> str:
        for secret in secrets:
            text = text.replace(secret, MASK)
        return text
