"""
Wiring between the HTTP layer and the orchestration pipeline.
"""

import logging
from fastapi import Depends

from src.models.manager import ModelManager
from src.pipeline.orchestration.orchestrator import PromptOrchestrator
from src.pipeline.orchestration.types import PipelineRequest, PipelineResult
from .store import ChatStore, get_chat_store, get_model_manager

logger = logging.getLogger(__name__)


def get_orchestrator(
    model_manager: ModelManager = Depends(get_model_manager),
    store: ChatStore = Depends(get_chat_store),
) -> PromptOrchestrator:
    """FastAPI dependency: an orchestrator reading from and reporting to the chat store."""
    return PromptOrchestrator(model_manager, history=store, files=store, reporter=store)


def run_pipeline(orchestrator: PromptOrchestrator, project_id: str, prompt: str) -> PipelineResult:
    """Background-task entry point; one run per stored user message."""
    result = orchestrator.run(PipelineRequest(project_id=project_id, prompt=prompt))
    if not result.ok:
        logger.error(f"Pipeline for project {project_id} ended with error: {result.error}")
    return result
