"""
Synchronous pipeline endpoint for programmatic callers.
"""

import time
import logging
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ..models.chat import OrchestrateRequest, PipelineResponse, PipelineData, StageResultData
from ..dependencies.pipeline import get_orchestrator, run_pipeline
from src.pipeline.orchestration.orchestrator import PromptOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run", response_model=PipelineResponse)
async def run_orchestrator(
    request: OrchestrateRequest,
    orchestrator: PromptOrchestrator = Depends(get_orchestrator),
):
    """
    Run the full pipeline for one prompt and wait for the reply.

    The reply is also stored in the project's chat like any other assistant
    message. A pipeline that fell back to its error message reports
    success=False but still carries that message as data.final.
    """
    start_time = time.time()
    result = await run_in_threadpool(run_pipeline, orchestrator, request.project_id, request.prompt)
    processing_time = time.time() - start_time
    logger.info(f"Pipeline run finished in {processing_time:.2f}s (ok={result.ok})")

    meta = result.metadata
    return PipelineResponse(
        success=result.ok,
        message="Pipeline completed" if result.ok else result.error,
        data=PipelineData(
            final=result.final,
            task_types=[t.value for t in meta.task_types],
            processing_stage=meta.processing_stage.value,
            iteration_count=meta.iteration_count,
            short_circuited=result.short_circuited,
            stages=[StageResultData(**s.to_dict()) for s in result.stages],
            degraded_stages=result.degraded_stages,
            processing_time=processing_time,
        ),
    )
