from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Sequence, Protocol

from src.models.router import TaskCategory


class ProcessingStage(str, Enum):
    CLASSIFYING = "CLASSIFYING"
    INJECTING_CONTEXT = "INJECTING_CONTEXT"
    OPTIMIZING = "OPTIMIZING"
    PLANNING = "PLANNING"
    BREAKING_DOWN = "BREAKING_DOWN"
    EXECUTING = "EXECUTING"
    REFINING = "REFINING"
    SEARCHING = "SEARCHING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Input types
@dataclass(frozen=True)
class PipelineRequest:
    project_id: str
    prompt: str


# Records read from / written to the persistence collaborator
@dataclass(frozen=True)
class HistoryMessage:
    role: str
    message: str


@dataclass(frozen=True)
class ProjectFile:
    file_path: str
    content: str


class ChatHistoryReader(Protocol):
    def list_messages(self, project_id: str) -> Sequence[HistoryMessage]: ...


class ProjectFileReader(Protocol):
    def list_files(self, project_id: str) -> Sequence[ProjectFile]: ...


class ProgressReporter(Protocol):
    def add_assistant_message(self, project_id: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> Any: ...


# Pipeline state
@dataclass
class PipelineMetadata:
    task_types: List[TaskCategory] = field(default_factory=lambda: [TaskCategory.THINKING])
    processing_stage: ProcessingStage = ProcessingStage.CLASSIFYING
    iteration_count: int = 0

    @property
    def primary_category(self) -> TaskCategory:
        return self.task_types[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_types": [t.value for t in self.task_types],
            "processing_stage": self.processing_stage.value,
            "iteration_count": self.iteration_count,
        }


@dataclass
class PipelineContext:
    """Mutable state owned by exactly one orchestrator run."""
    request: PipelineRequest
    recent_chat: str = ""
    code_context: str = ""
    memory: str = ""
    metadata: PipelineMetadata = field(default_factory=PipelineMetadata)


# Output types
@dataclass(frozen=True)
class StageResult:
    stage: str
    ok: bool
    output: Any
    fallback_applied: bool = False
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return not self.ok or self.fallback_applied

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "ok": self.ok,
            "fallback_applied": self.fallback_applied,
            "error": self.error,
        }


@dataclass
class PipelineResult:
    ok: bool
    final: str
    metadata: PipelineMetadata
    stages: List[StageResult] = field(default_factory=list)
    error: Optional[str] = None
    short_circuited: bool = False #answered without the model pipeline

    @property
    def degraded_stages(self) -> List[str]:
        return [s.stage for s in self.stages if s.degraded]
