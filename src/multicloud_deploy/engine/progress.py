"""
Step log and progress sink plumbing.

StepLog keeps one StepRecord per step key, in pipeline order, and forwards
every update to an optional caller-supplied sink.
"""
from typing import Any, Callable, Dict, List, Optional

from ..models.deployment import StepRecord, StepStatus
from ..utils.command_runner import LineCallback, maybe_await
from ..utils.logging import get_logger

logger = get_logger(__name__)

# sink(step, status, details, log_line=None); plain function or coroutine function
ProgressSink = Callable[..., Any]


class StepLog:
    """Ordered step records for one run, mirrored to a progress sink."""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self._sink = sink
        self._records: Dict[str, StepRecord] = {}

    @property
    def records(self) -> List[StepRecord]:
        """Snapshot of the records in pipeline order."""
        return [record.model_copy(deep=True) for record in self._records.values()]

    def get(self, step: str) -> Optional[StepRecord]:
        return self._records.get(step)

    async def report(
        self,
        step: str,
        status: StepStatus,
        details: str = "",
        log_line: Optional[str] = None,
    ) -> None:
        """Update the step's status and details, appending log_line if given."""
        status = StepStatus(status).value
        record = self._records.get(step)
        if record is None:
            record = StepRecord(step=step, status=status, details=details)
            self._records[step] = record
        else:
            record.status = status
            record.details = details

        if log_line is not None:
            record.logs.append(log_line)

        await self._notify(step, status, details, log_line)

    async def append_line(self, step: str, line: str) -> None:
        """Append a raw output line without changing the step's status."""
        record = self._records.get(step)
        if record is None:
            await self.report(step, StepStatus.RUNNING, "", line)
            return
        record.logs.append(line)
        await self._notify(step, record.status, record.details, line)

    def line_forwarder(self, step: str) -> LineCallback:
        """on_line callback for CommandExecutor.execute_interactive."""
        async def forward(line: str, stream: str) -> None:
            await self.append_line(step, line)
        return forward

    async def _notify(self, step: str, status: str, details: str, log_line: Optional[str]) -> None:
        if self._sink is None:
            return
        try:
            await maybe_await(self._sink(step, status, details, log_line))
        except Exception as e:
            logger.warning("progress_sink_failed", step=step, status=status, error=str(e))
