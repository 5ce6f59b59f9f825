"""Memory pipeline state machine.

States:  idle → summarizing → chunking → embedding_chunks → embedding_step_memory
         idle → publishing_memory | disconnecting_memory → recomputing_profile → idle

Each stage is independently callable, so every working state may also be
entered directly from idle and may return to idle when a chain stops. The
transition table is declarative data; ``advance`` is the only way a
``PipelineRun`` changes state.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4


class PipelineState(str, Enum):
    IDLE = "idle"
    SUMMARIZING = "summarizing"
    CHUNKING = "chunking"
    EMBEDDING_CHUNKS = "embedding_chunks"
    EMBEDDING_STEP_MEMORY = "embedding_step_memory"
    PUBLISHING_MEMORY = "publishing_memory"
    DISCONNECTING_MEMORY = "disconnecting_memory"
    RECOMPUTING_PROFILE = "recomputing_profile"


class InvalidStageTransition(Exception):
    """Raised when a run tries to move between states the table does not allow."""

    def __init__(self, current: PipelineState, target: PipelineState):
        self.current = current
        self.target = target
        super().__init__(f"Invalid pipeline transition: {current.value} -> {target.value}")


_STAGES = [s for s in PipelineState if s is not PipelineState.IDLE]

# Chained successors; every stage can also fall back to idle
_SUCCESSORS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.SUMMARIZING: {PipelineState.CHUNKING},
    PipelineState.CHUNKING: {PipelineState.EMBEDDING_CHUNKS},
    PipelineState.EMBEDDING_CHUNKS: {PipelineState.EMBEDDING_STEP_MEMORY},
    PipelineState.EMBEDDING_STEP_MEMORY: {
        PipelineState.PUBLISHING_MEMORY,
        PipelineState.DISCONNECTING_MEMORY,
    },
    PipelineState.PUBLISHING_MEMORY: {PipelineState.RECOMPUTING_PROFILE},
    PipelineState.DISCONNECTING_MEMORY: {PipelineState.RECOMPUTING_PROFILE},
    PipelineState.RECOMPUTING_PROFILE: set(),
}

PIPELINE_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset(_STAGES),
    **{
        stage: frozenset(successors | {PipelineState.IDLE})
        for stage, successors in _SUCCESSORS.items()
    },
}


def can_advance(current: PipelineState, target: PipelineState) -> bool:
    return target in PIPELINE_TRANSITIONS[current]


def advance(current: PipelineState, target: PipelineState) -> PipelineState:
    """Return *target* if the move is legal, else raise InvalidStageTransition."""
    if not can_advance(current, target):
        raise InvalidStageTransition(current, target)
    return target


@dataclass
class PipelineRun:
    """Record of one chain invocation for a document."""

    document_id: str
    run_id: str = field(default_factory=lambda: str(uuid4()))
    state: PipelineState = PipelineState.IDLE
    visited: list[PipelineState] = field(default_factory=list)
    completed: list[PipelineState] = field(default_factory=list)
    failed_stage: PipelineState | None = None
    error: str | None = None

    def enter(self, stage: PipelineState) -> None:
        self.state = advance(self.state, stage)
        self.visited.append(stage)

    def complete(self) -> None:
        self.completed.append(self.state)

    def fail(self, error: Exception) -> None:
        self.failed_stage = self.state
        self.error = getattr(error, "message", None) or str(error)
        self.state = advance(self.state, PipelineState.IDLE)

    def finish(self) -> None:
        if self.state is not PipelineState.IDLE:
            self.state = advance(self.state, PipelineState.IDLE)

    @property
    def succeeded(self) -> bool:
        return self.failed_stage is None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "completed": [s.value for s in self.completed],
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error": self.error,
        }
