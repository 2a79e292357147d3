"""
Execution step tracking.

The pipeline reports its progress as a list of :class:`ExecutionStep` records (understanding,
planning, skill usage, tool execution, completion).  A sink callback receives every new or updated
step so a transport can stream progress; storing steps is left to the caller.
"""

import logging
import uuid
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from toolplan.core.schema import PlannedCall

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    """Lifecycle of a step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class StepType(str, Enum):
    """What a step represents."""

    UNDERSTANDING = "understanding"
    PLANNING = "planning"
    SKILL_USAGE = "skill_usage"
    TOOL_EXECUTION = "tool_execution"
    COMPLETION = "completion"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStep(BaseModel):
    """One tracked step of a turn."""

    step_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_id: str
    step_type: StepType
    status: StepStatus = StepStatus.PENDING
    started_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None

    # type-specific content
    reasoning: Optional[str] = None
    planned_tools: Optional[List[PlannedCall]] = None
    skill_id: Optional[str] = None
    skill_name: Optional[str] = None
    tool_name: Optional[str] = None
    tool_arguments: Optional[Dict[str, Any]] = None
    tool_result: Any = None

    @property
    def is_instant(self) -> bool:
        """Only tool executions take time; everything else completes on creation."""
        return self.step_type is not StepType.TOOL_EXECUTION

    @property
    def title(self) -> str:
        titles = {
            StepType.UNDERSTANDING: "Analyzing request...",
            StepType.PLANNING: "Planning response...",
            StepType.SKILL_USAGE: f"Using {self.skill_name} skill...",
            StepType.TOOL_EXECUTION: f"Running {self.tool_name}...",
            StepType.COMPLETION: "Complete",
        }
        return titles[self.step_type]

    def _finish(self, status: StepStatus) -> None:
        self.status = status
        self.completed_at = _now()
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)

    def complete(self, result: Any = None) -> None:
        self._finish(StepStatus.COMPLETED)
        if result is not None and self.step_type is StepType.TOOL_EXECUTION:
            self.tool_result = result

    def fail(self, error: str) -> None:
        self._finish(StepStatus.FAILED)
        self.error_message = error


StepSink = Callable[[ExecutionStep], None]


class ExecutionTracker:
    """Creates steps for one task and forwards them to an optional sink."""

    def __init__(self, task_id: Optional[str] = None, sink: Optional[StepSink] = None) -> None:
        self.task_id = task_id or str(uuid.uuid4())
        self.steps: List[ExecutionStep] = []
        self._sink = sink

    def _emit(self, step: ExecutionStep) -> ExecutionStep:
        if self._sink is not None:
            try:
                self._sink(step)
            except Exception:  # pylint: disable=broad-except
                # sink errors never reach the pipeline
                logger.warning("Step sink raised for step %s", step.step_id, exc_info=True)
        return step

    def _start(self, step_type: StepType, **content: Any) -> ExecutionStep:
        step = ExecutionStep(task_id=self.task_id, step_type=step_type, **content)
        if step.is_instant:
            step.status = StepStatus.COMPLETED
            step.completed_at = step.started_at
            step.duration_ms = 0
        else:
            step.status = StepStatus.IN_PROGRESS
        self.steps.append(step)
        return self._emit(step)

    def track_understanding(self) -> ExecutionStep:
        return self._start(StepType.UNDERSTANDING)

    def track_planning(
        self, reasoning: Optional[str] = None, planned_tools: Optional[List[PlannedCall]] = None
    ) -> ExecutionStep:
        return self._start(StepType.PLANNING, reasoning=reasoning, planned_tools=planned_tools)

    def track_skill_usage(self, skill_id: str, skill_name: Optional[str] = None) -> ExecutionStep:
        return self._start(StepType.SKILL_USAGE, skill_id=skill_id, skill_name=skill_name or skill_id)

    def track_tool_execution(self, tool_name: str, arguments: Dict[str, Any]) -> ExecutionStep:
        return self._start(StepType.TOOL_EXECUTION, tool_name=tool_name, tool_arguments=arguments)

    def track_completion(self) -> ExecutionStep:
        return self._start(StepType.COMPLETION)

    def complete(self, step: ExecutionStep, result: Any = None) -> ExecutionStep:
        step.complete(result)
        return self._emit(step)

    def fail(self, step: ExecutionStep, error: str) -> ExecutionStep:
        step.fail(error)
        return self._emit(step)
