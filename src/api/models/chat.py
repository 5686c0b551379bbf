"""
API models for chat and orchestration endpoints.

These are the HTTP shapes; the pipeline's own types live in
src.pipeline.orchestration.types.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, List, Optional
from datetime import datetime

from .common import APIResponse


# API Request Models
class SendMessageRequest(BaseModel):
    """A user chat message for a project."""
    message: str = Field(..., min_length=1, description="Raw user prompt")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"message": "Write a function to reverse a string in Python"}
        }
    )


class ProjectFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path of the file inside the project")
    content: str = Field("", description="File content")


class OrchestrateRequest(BaseModel):
    """Run the pipeline synchronously for one prompt."""
    project_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)


# API Response Models
class ChatMessage(BaseModel):
    id: str
    project_id: str
    role: str
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class ChatMessageResponse(APIResponse):
    data: Optional[ChatMessage] = None


class ChatHistoryResponse(APIResponse):
    data: List[ChatMessage] = Field(default_factory=list)


class ProjectFileData(BaseModel):
    project_id: str
    file_path: str
    size: int
    last_modified: datetime


class ProjectFileResponse(APIResponse):
    data: Optional[ProjectFileData] = None


class StageResultData(BaseModel):
    stage: str
    ok: bool
    fallback_applied: bool
    error: Optional[str] = None


class PipelineData(BaseModel):
    """Outcome of one pipeline run."""
    final: str = Field(..., description="Assistant reply")
    task_types: List[str] = Field(..., description="Classified task categories")
    processing_stage: str = Field(..., description="Terminal stage (COMPLETED or FAILED)")
    iteration_count: int = Field(0, description="Chunks executed")
    short_circuited: bool = Field(False, description="Answered without calling a model")
    stages: List[StageResultData] = Field(default_factory=list)
    degraded_stages: List[str] = Field(default_factory=list)
    processing_time: float = Field(..., description="Processing time in seconds")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "final": "def reverse(s: str) -> str:\n    return s[::-1]",
                "task_types": ["CODING"],
                "processing_stage": "COMPLETED",
                "iteration_count": 3,
                "short_circuited": False,
                "stages": [{"stage": "classify", "ok": True, "fallback_applied": False, "error": None}],
                "degraded_stages": [],
                "processing_time": 12.7,
            }
        }
    )


class PipelineResponse(APIResponse):
    data: Optional[PipelineData] = None
