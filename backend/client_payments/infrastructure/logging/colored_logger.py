"""Colored pipeline logger — ANSI-colored console logging for the records write pipeline.

Color scheme:
    🟡 Yellow  — Normalization
    🟢 Green   — Authoritative commit
    🔵 Blue    — v2 shadow write
    🟣 Magenta — Legacy mirror write
    🟠 Cyan    — Notifications
    🔴 Red     — Conflicts / errors
"""

import logging
import time
from contextlib import contextmanager
from typing import Any


class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


class RecordsStage:
    """Predefined write-pipeline stages with colors and icons."""

    NORMALIZE = ("NORMALIZE", _Colors.YELLOW, "🧹")
    COMMIT = ("COMMIT", _Colors.GREEN, "💾")
    SHADOW_WRITE = ("SHADOW_V2", _Colors.BLUE, "🪞")
    MIRROR = ("MIRROR_LEGACY", _Colors.MAGENTA, "🔁")
    NOTIFY = ("NOTIFY", _Colors.CYAN, "🔔")
    CONFLICT = ("CONFLICT", _Colors.RED, "⛔")


def _format_details(kwargs: dict[str, Any]) -> str:
    return " | ".join(f"{k}={v}" for k, v in kwargs.items())


class RecordsPipelineLogger:
    """Color-coded logger for record store writes.

    Usage:
        log = RecordsPipelineLogger(__name__)
        with log.timed_step(RecordsStage.COMMIT, "Replacing records", count=12):
            ...
    """

    def __init__(self, component_name: str):
        self._logger = logging.getLogger(component_name)

    def step_start(self, stage: tuple[str, str, str], message: str, **kwargs: Any) -> None:
        label, color, icon = stage
        formatted = f"{color}{_Colors.BOLD}{icon} [{label}]{_Colors.RESET} {color}{message}{_Colors.RESET}"
        if kwargs:
            formatted += f" {_Colors.GRAY}({_format_details(kwargs)}){_Colors.RESET}"
        self._logger.debug(formatted)

    def step_complete(self, stage: tuple[str, str, str], message: str, **kwargs: Any) -> None:
        label, color, icon = stage
        formatted = f"{color}{icon} [{label}]{_Colors.RESET} {_Colors.GREEN}✓ {message}{_Colors.RESET}"
        if kwargs:
            formatted += f" {_Colors.GRAY}({_format_details(kwargs)}){_Colors.RESET}"
        self._logger.info(formatted)

    def step_warning(self, stage: tuple[str, str, str], message: str, error: BaseException | None = None) -> None:
        """Log a swallowed failure (shadow write, mirror, notification) in yellow."""
        label, _, icon = stage
        formatted = f"{_Colors.YELLOW}{_Colors.BOLD}{icon} [{label}]{_Colors.RESET} {_Colors.YELLOW}{message}{_Colors.RESET}"
        if error is not None:
            formatted += f" {_Colors.DIM}→ {type(error).__name__}: {error}{_Colors.RESET}"
        self._logger.warning(formatted)

    def step_error(self, stage: tuple[str, str, str], message: str, error: BaseException | None = None) -> None:
        label, _, icon = stage
        formatted = f"{_Colors.RED}{_Colors.BOLD}{icon} [{label}]{_Colors.RESET} {_Colors.RED}{message}{_Colors.RESET}"
        if error is not None:
            formatted += f" {_Colors.DIM}→ {type(error).__name__}: {error}{_Colors.RESET}"
        self._logger.error(formatted)

    def detail(self, message: str, **kwargs: Any) -> None:
        formatted = f"   {_Colors.GRAY}├─ {message}{_Colors.RESET}"
        if kwargs:
            formatted += f" {_Colors.DIM}({_format_details(kwargs)}){_Colors.RESET}"
        self._logger.debug(formatted)

    @contextmanager
    def timed_step(self, stage: tuple[str, str, str], message: str, **kwargs: Any):
        """Log start and end of a step with elapsed time; failures are logged and re-raised."""
        self.step_start(stage, message, **kwargs)
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            elapsed = time.perf_counter() - start
            self.step_error(stage, f"{message} failed after {elapsed * 1000:.1f}ms", error=e)
            raise
        else:
            elapsed = time.perf_counter() - start
            self.step_complete(stage, f"{message} ({elapsed * 1000:.1f}ms)", **kwargs)
