"""Loading checklist, session states, and bootstrap channel messages."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum, StrEnum


class StepStatus(StrEnum):
    """Status of one bootstrap step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LoadStep(IntEnum):
    """Bootstrap steps, in execution order."""

    INITIALIZE_CLIENT = 0
    FETCH_PR_DETAILS = 1
    FETCH_COMMITS = 2
    FETCH_FILES = 3
    PROCESS_DIFFS = 4


STEP_NAMES = {
    LoadStep.INITIALIZE_CLIENT: "Initializing client",
    LoadStep.FETCH_PR_DETAILS: "Fetching PR details",
    LoadStep.FETCH_COMMITS: "Loading commits",
    LoadStep.FETCH_FILES: "Fetching file changes",
    LoadStep.PROCESS_DIFFS: "Processing diffs",
}

_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.PENDING, StepStatus.IN_PROGRESS},
    StepStatus.IN_PROGRESS: {StepStatus.IN_PROGRESS, StepStatus.COMPLETED},
    StepStatus.COMPLETED: {StepStatus.COMPLETED},
}


class InvalidTransitionError(ValueError):
    """Raised when a step status would move backwards or skip a state."""


@dataclass(frozen=True, slots=True)
class LoadingStep:
    """One checklist entry."""

    name: str
    status: StepStatus = StepStatus.PENDING


@dataclass(slots=True)
class LoadingStatus:
    """Ordered checklist of bootstrap steps plus a free-text current message."""

    steps: list[LoadingStep] = field(default_factory=list)
    current_message: str = ""

    @classmethod
    def initial(cls) -> LoadingStatus:
        """Checklist at bootstrap start: client ready, everything else pending."""
        steps = [LoadingStep(name=STEP_NAMES[step]) for step in LoadStep]
        steps[LoadStep.INITIALIZE_CLIENT] = LoadingStep(
            name=STEP_NAMES[LoadStep.INITIALIZE_CLIENT],
            status=StepStatus.COMPLETED,
        )
        return cls(steps=steps, current_message="Initializing...")

    def transition(self, index: int, status: StepStatus) -> None:
        """Move step ``index`` to ``status``; only Pending -> InProgress -> Completed is allowed."""
        if not 0 <= index < len(self.steps):
            raise IndexError(f"Loading step index {index} out of range.")
        step = self.steps[index]
        if status not in _ALLOWED_TRANSITIONS[step.status]:
            raise InvalidTransitionError(
                f"Cannot move step '{step.name}' from {step.status} to {status}."
            )
        self.steps[index] = replace(step, status=status)

    def rename(self, index: int, name: str) -> None:
        self.steps[index] = replace(self.steps[index], name=name)

    def snapshot(self) -> LoadingStatus:
        """Independent copy safe to hand to another task."""
        return LoadingStatus(steps=list(self.steps), current_message=self.current_message)


@dataclass(frozen=True, slots=True)
class LoadingState:
    """Session is loading; the checklist describes progress."""

    status: LoadingStatus


@dataclass(frozen=True, slots=True)
class ReadyState:
    """Session data is resident and navigable."""


@dataclass(frozen=True, slots=True)
class ErrorState:
    """Terminal failure with a user-facing message."""

    message: str


SessionState = LoadingState | ReadyState | ErrorState


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    """Channel message carrying a checklist snapshot."""

    status: LoadingStatus


@dataclass(frozen=True, slots=True)
class LoadComplete:
    """Final channel message of a bootstrap run; ``error`` is None on success."""

    error: str | None = None


LoadingUpdate = StatusUpdate | LoadComplete
