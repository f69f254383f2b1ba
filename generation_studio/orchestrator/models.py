"""
Data model for batch generation.

A GenerationTask is the immutable unit of work; a GenerationResult is the
outcome stored under the task's key. Results are built through the
classmethod constructors so that status-dependent fields are always
consistent (url only on success, model_response only on warning, ...).
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple

from ..api.error_handler import InvalidTransitionError


class ResultKey(NamedTuple):
    """Stable identity of a task across retries."""
    source_index: int
    variant_index: int
    batch_timestamp: int

    def __str__(self) -> str:
        return f"{self.batch_timestamp}-{self.source_index}-{self.variant_index}"


class TaskKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class ResultStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    TIMED_OUT = "timed_out"  # video only

    @property
    def is_terminal(self) -> bool:
        return self is not ResultStatus.PENDING

    @property
    def is_retryable(self) -> bool:
        return self in (ResultStatus.WARNING, ResultStatus.ERROR, ResultStatus.TIMED_OUT)


@dataclass(frozen=True)
class GenerationTask:
    """One (source item, prompt variant) pair of a batch."""
    source_index: int
    variant_index: int
    batch_timestamp: int
    input_refs: Tuple[str, ...]
    prompt_text: str
    kind: TaskKind = TaskKind.IMAGE
    model_params: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> ResultKey:
        return ResultKey(self.source_index, self.variant_index, self.batch_timestamp)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome associated with a key."""
    key: ResultKey
    status: ResultStatus
    prompt: str
    kind: TaskKind = TaskKind.IMAGE
    url: Optional[str] = None
    error: Optional[str] = None
    model_response: Optional[str] = None
    workflow_id: Optional[str] = None

    def __post_init__(self):
        if (self.url is not None) != (self.status is ResultStatus.SUCCESS):
            raise InvalidTransitionError(f"{self.key}: url must be present iff status is success")
        if (self.error is not None) != (self.status in (ResultStatus.WARNING, ResultStatus.ERROR,
                                                         ResultStatus.TIMED_OUT)):
            raise InvalidTransitionError(f"{self.key}: error must be present iff the result failed")
        if (self.model_response is not None) != (self.status is ResultStatus.WARNING):
            raise InvalidTransitionError(f"{self.key}: model_response must be present iff status is warning")
        if self.status is ResultStatus.TIMED_OUT and not self.workflow_id:
            raise InvalidTransitionError(f"{self.key}: a timed-out result must keep its workflow_id")

    # -- constructors ---------------------------------------------------------

    @classmethod
    def pending(cls, task: GenerationTask) -> "GenerationResult":
        return cls(key=task.key, status=ResultStatus.PENDING, prompt=task.prompt_text, kind=task.kind)

    @classmethod
    def success(cls, task: GenerationTask, url: str,
                workflow_id: Optional[str] = None) -> "GenerationResult":
        return cls(key=task.key, status=ResultStatus.SUCCESS, prompt=task.prompt_text,
                   kind=task.kind, url=url, workflow_id=workflow_id)

    @classmethod
    def warning(cls, task: GenerationTask, model_response: str,
                message: str = "The model returned a text response instead of an image. "
                               "This may be due to a safety policy violation or an unclear prompt."
                ) -> "GenerationResult":
        return cls(key=task.key, status=ResultStatus.WARNING, prompt=task.prompt_text,
                   kind=task.kind, error=message, model_response=model_response)

    @classmethod
    def failure(cls, task: GenerationTask, message: str,
                workflow_id: Optional[str] = None) -> "GenerationResult":
        return cls(key=task.key, status=ResultStatus.ERROR, prompt=task.prompt_text,
                   kind=task.kind, error=message, workflow_id=workflow_id)

    @classmethod
    def timed_out(cls, task: GenerationTask, workflow_id: str, message: str) -> "GenerationResult":
        return cls(key=task.key, status=ResultStatus.TIMED_OUT, prompt=task.prompt_text,
                   kind=task.kind, error=message, workflow_id=workflow_id)

    def as_pending(self) -> "GenerationResult":
        """Fresh pending entry for a retry; keeps key, prompt and workflow_id."""
        return replace(self, status=ResultStatus.PENDING, url=None, error=None, model_response=None)

    # -- convenience ----------------------------------------------------------

    @property
    def source_index(self) -> int:
        return self.key.source_index

    @property
    def variant_index(self) -> int:
        return self.key.variant_index

    @property
    def batch_timestamp(self) -> int:
        return self.key.batch_timestamp


@dataclass(frozen=True)
class BatchProgress:
    completed: int = 0
    total: int = 0

    def __post_init__(self):
        if not 0 <= self.completed <= self.total:
            raise ValueError(f"Invalid progress {self.completed}/{self.total}")

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 0.0

