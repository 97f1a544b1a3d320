"""Generation data contracts shared by adapters, orchestration and API layers.

Architectural role:
    Defines the request and outcome shapes exchanged between the HTTP/CLI
    adapters and `service.ImageGenerationService`, plus the poll-task state
    owned by `task_poller.TaskPoller`.

Lifecycle:
    - `GenerationRequest` is created per incoming call and never persisted.
    - `GenerationOutcome` is produced once per provider attempted.
    - `PollableTask` lives from task submission until a terminal status.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import os


GENERATION_MODES = ("all", "first_success")


@dataclass
class GenerationRequest:
    """One incoming generation call.

    Attributes:
        prompt: Text prompt; must be non-empty.
        provider: Target provider key. `None` means "no explicit provider",
            resolved through `mode`.
        size: Optional size override such as `1920x1080`.
        model: Optional model identifier override.
        mode: `all` (concurrent fan-out) or `first_success` (sequential
            fallback); only consulted when `provider` is absent.
    """

    prompt: str
    provider: str | None = None
    size: str | None = None
    model: str | None = None
    mode: str = "all"

    def __post_init__(self):
        if not self.prompt or not self.prompt.strip():
            raise ValueError("prompt must not be empty")
        if self.mode not in GENERATION_MODES:
            raise ValueError(f"unknown generation mode: {self.mode}")


@dataclass
class GenerationOutcome:
    """Result of one provider attempt.

    A successful outcome always carries `path` and `image_url`; a failed one
    always carries `error` and never a path.
    """

    provider: str
    provider_name: str
    model: str
    success: bool
    path: str | None = None
    image_url: str | None = None
    error: str | None = None
    error_kind: str | None = None
    retryable: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def filename(self) -> str | None:
        return os.path.basename(self.path) if self.path else None

    @property
    def elapsed_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "platform": self.provider,
            "name": self.provider_name,
            "model": self.model,
            "success": self.success,
            "filePath": self.path,
            "filename": self.filename,
            "imageUrl": self.image_url,
            "error": self.error,
            "errorKind": self.error_kind,
            "retryable": self.retryable,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class TaskStatus(str, Enum):
    """Canonical task status every provider vocabulary is mapped into."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.TIMED_OUT)


@dataclass
class PollableTask:
    """Provider-side task tracked by the poll loop that submitted it."""

    task_id: str
    provider: str
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0

    def transition(self, status: TaskStatus) -> None:
        """Move to `status`; terminal states are final."""
        if self.status.is_terminal:
            raise ValueError(
                f"task {self.task_id} already terminal ({self.status.value})"
            )
        self.status = status
