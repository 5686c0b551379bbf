"""
Chat endpoints.

Sending a message stores it, acknowledges it, and hands the prompt to the
orchestration pipeline as a background task. The assistant's progress
updates and final reply show up in the project's message list.
"""

from fastapi import APIRouter, BackgroundTasks, Depends

from ..models.chat import (
    SendMessageRequest, ChatMessage, ChatMessageResponse, ChatHistoryResponse,
    ProjectFileRequest, ProjectFileData, ProjectFileResponse,
)
from ..dependencies.store import ChatStore, ChatRecord, get_chat_store
from ..dependencies.pipeline import get_orchestrator, run_pipeline
from src.pipeline.orchestration.orchestrator import PromptOrchestrator

router = APIRouter()


def _to_message(record: ChatRecord) -> ChatMessage:
    return ChatMessage(
        id=record.id,
        project_id=record.project_id,
        role=record.role,
        message=record.message,
        metadata=record.metadata,
        created_at=record.created_at,
    )


@router.post("/{project_id}/messages", response_model=ChatMessageResponse, status_code=202)
async def send_message(
    project_id: str,
    request: SendMessageRequest,
    background_tasks: BackgroundTasks,
    store: ChatStore = Depends(get_chat_store),
    orchestrator: PromptOrchestrator = Depends(get_orchestrator),
):
    """Store the user's message and schedule the assistant reply."""
    record = store.add_user_message(project_id, request.message)
    background_tasks.add_task(run_pipeline, orchestrator, project_id, request.message)

    return ChatMessageResponse(
        success=True,
        message="Message stored; assistant reply scheduled",
        data=_to_message(record),
    )


@router.get("/{project_id}/messages", response_model=ChatHistoryResponse)
async def list_messages(project_id: str, store: ChatStore = Depends(get_chat_store)):
    records = store.list_messages(project_id)
    return ChatHistoryResponse(
        success=True,
        message=f"{len(records)} messages",
        data=[_to_message(r) for r in records],
    )


@router.put("/{project_id}/files", response_model=ProjectFileResponse)
async def upsert_file(project_id: str, request: ProjectFileRequest, store: ChatStore = Depends(get_chat_store)):
    """Add or replace a project file used as code context."""
    record = store.upsert_file(project_id, request.file_path, request.content)
    return ProjectFileResponse(
        success=True,
        message="File stored",
        data=ProjectFileData(
            project_id=record.project_id,
            file_path=record.file_path,
            size=len(record.content),
            last_modified=record.last_modified,
        ),
    )
