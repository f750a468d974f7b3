"""
Pipeline step descriptors.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..models.deployment import Criticality, StepOutcome

StepAction = Callable[[Any], Awaitable[StepOutcome]]


@dataclass(frozen=True)
class PipelineStep:
    """
    One ordered pipeline entry.

    A hard step that raises aborts the run; a soft step that raises is
    recorded as a warning and the run continues.
    """
    key: str
    criticality: Criticality
    description: str
    action: StepAction

    @property
    def is_hard(self) -> bool:
        return self.criticality is Criticality.HARD
