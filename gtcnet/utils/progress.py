"""Progress reporting interfaces for long-running loops.

Callers inject a callback instead of the loop writing to the console, so progress can be silenced or captured.
"""

import abc

import gtcnet.utils.logger as logger_utils

logger = logger_utils.get_logger()


class ProgressCallback(abc.ABC):
    """Receives progress of a task as a fraction in [0, 1]."""

    def __init__(self) -> None:
        self._progress = 0.0

    @property
    def progress(self) -> float:
        return self._progress

    def report_progress(self, progress: float) -> None:
        """Sets the absolute progress, clamped to [0, 1]."""
        self._progress = min(max(progress, 0.0), 1.0)
        self._on_update()

    def report_incremental_progress(self, increment: float) -> None:
        self.report_progress(self._progress + increment)

    def report_finished(self) -> None:
        self._progress = 1.0
        self._on_finished()

    @abc.abstractmethod
    def _on_update(self) -> None:
        """Hook invoked after every progress update."""

    @abc.abstractmethod
    def _on_finished(self) -> None:
        """Hook invoked once the task completes."""


class NullProgressCallback(ProgressCallback):
    """Tracks progress without reporting it."""

    def _on_update(self) -> None:
        pass

    def _on_finished(self) -> None:
        pass


class LoggingProgressCallback(ProgressCallback):
    """Logs progress at INFO level, once per `step` of completion.

    Args:
        description: prefix of every progress line, e.g. "Triangulating:".
        step: fraction of completion between two log lines.
    """

    def __init__(self, description: str, step: float = 0.1) -> None:
        super().__init__()
        self._description = description
        self._step = step
        self._last_logged = -1.0

    def _on_update(self) -> None:
        if self._progress - self._last_logged >= self._step:
            self._last_logged = self._progress
            logger.info("%s %.0f%%", self._description, 100 * self._progress)

    def _on_finished(self) -> None:
        logger.info("%s done.", self._description)
