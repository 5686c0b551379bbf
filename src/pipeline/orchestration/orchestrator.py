"""
Orchestrator that turns a chat prompt into an assistant reply.

Stages run in a fixed order. Every stage has a fallback value, so a failing
model call degrades the reply instead of aborting it; the StageResult trail
records which stages degraded. Only errors outside stage handling (for
example failing to store the final reply) reach the top-level handler.
"""

import logging
from typing import Any, Callable, List, Optional

from src.models.manager import ModelManager
from src.models.router import TaskCategory
from .simple import SimpleInteractionHandler
from .stages import PipelineStages, PipelineSettings
from .types import (
    PipelineRequest, PipelineContext, PipelineResult, StageResult, ProcessingStage,
    ChatHistoryReader, ProjectFileReader, ProgressReporter,
)

logger = logging.getLogger(__name__)

CHUNK_FALLBACK_TEXT = (
    "I'm processing your request. Please note that some models may be temporarily unavailable, "
    "but I'll do my best to help you."
)
PLAN_HEADING = "📋 **Execution Plan:**\n\n"
ERROR_PREFIX = "❌ AI Pipeline Error: "


def fallback_plan(prompt: str) -> str:
    return f"Execute the following task: {prompt}"


class PromptOrchestrator:
    def __init__(
        self,
        manager: ModelManager,
        history: ChatHistoryReader,
        files: ProjectFileReader,
        reporter: ProgressReporter,
        simple_handler: Optional[SimpleInteractionHandler] = None,
        settings: Optional[PipelineSettings] = None,
    ):
        self.stages = PipelineStages(manager, history, files, settings)
        self.reporter = reporter
        self.simple_handler = simple_handler or SimpleInteractionHandler()

    def run(self, request: PipelineRequest) -> PipelineResult:
        """Produce exactly one final assistant message for the request."""
        ctx = PipelineContext(request=request)
        trail: List[StageResult] = []
        logger.info(f"Starting AI pipeline for project {request.project_id}")

        try:
            simple_response = self.simple_handler.try_handle(request.prompt)
            if simple_response is not None:
                logger.info("Handled as simple interaction")
                ctx.metadata.task_types = []
                ctx.metadata.processing_stage = ProcessingStage.COMPLETED
                self.reporter.add_assistant_message(request.project_id, simple_response)
                return PipelineResult(ok=True, final=simple_response, metadata=ctx.metadata, short_circuited=True)

            return self._run_stages(ctx, trail)

        except Exception as e:
            logger.error(f"Pipeline failed for project {request.project_id}: {e}", exc_info=True)
            error_message = f"{ERROR_PREFIX}{e}"
            ctx.metadata.processing_stage = ProcessingStage.FAILED
            try:
                self.reporter.add_assistant_message(request.project_id, error_message)
            except Exception as report_error:
                logger.error(f"Could not store pipeline error message: {report_error}")
            return PipelineResult(ok=False, final=error_message, metadata=ctx.metadata, stages=trail, error=error_message)

    def _run_stages(self, ctx: PipelineContext, trail: List[StageResult]) -> PipelineResult:
        request = ctx.request
        meta = ctx.metadata

        # 1. classify
        meta.processing_stage = ProcessingStage.CLASSIFYING
        meta.task_types = self._attempt(
            trail, "classify",
            lambda: self.stages.classify(request.prompt),
            fallback=[TaskCategory.THINKING],
        )
        logger.info(f"Task types: {[t.value for t in meta.task_types]}")
        if trail[-1].ok:
            self._report_progress(
                ctx, f"🔍 Analyzing your request... (Task type: {', '.join(t.value for t in meta.task_types)})"
            )

        # 2. inject context
        meta.processing_stage = ProcessingStage.INJECTING_CONTEXT
        ctx.recent_chat, ctx.code_context, ctx.memory = self._attempt(
            trail, "inject_context",
            lambda: self.stages.inject_context(request.project_id),
            fallback=("", "", ""),
            accept=lambda value: True,
        )
        context = ctx.memory

        # 3. optimize
        meta.processing_stage = ProcessingStage.OPTIMIZING
        optimized = self._attempt(
            trail, "optimize",
            lambda: self.stages.optimize(request.prompt, context),
            fallback=request.prompt,
        )

        # 4. plan
        meta.processing_stage = ProcessingStage.PLANNING
        plan = self._attempt(
            trail, "plan",
            lambda: self.stages.plan(optimized, meta.task_types),
            fallback=fallback_plan(optimized),
        )

        if set(meta.task_types) == {TaskCategory.PLANNING}:
            logger.info("Planning-only request, returning plan")
            return self._complete(ctx, trail, f"{PLAN_HEADING}{plan}")

        # 5. break down
        meta.processing_stage = ProcessingStage.BREAKING_DOWN
        chunks = self._attempt(
            trail, "breakdown",
            lambda: self.stages.break_into_chunks(optimized, plan),
            fallback=[optimized],
        )
        logger.info(f"Task broken into {len(chunks)} chunks")

        # 6. execute, strictly in order: each chunk sees earlier results through memory
        meta.processing_stage = ProcessingStage.EXECUTING
        self._report_progress(ctx, f"⚙️ Processing {len(chunks)} task{'s' if len(chunks) > 1 else ''}...")

        results = []
        for i, chunk in enumerate(chunks, start=1):
            logger.info(f"Processing chunk {i}/{len(chunks)}")
            try:
                chunk_result = self.stages.execute_chunk(chunk, meta.primary_category, ctx.memory)
            except Exception as e:
                logger.warning(f"Chunk {i} execution failed, continuing: {e}")
                results.append(CHUNK_FALLBACK_TEXT)
                trail.append(StageResult(stage=f"execute:{i}", ok=False, output=CHUNK_FALLBACK_TEXT, fallback_applied=True, error=str(e)))
            else:
                results.append(chunk_result)
                ctx.memory += f"\n\nPrevious chunk result:\n{chunk_result}"
                trail.append(StageResult(stage=f"execute:{i}", ok=True, output=chunk_result))
            meta.iteration_count = i

        final_result = "\n\n".join(results)

        # 7. refine code
        if TaskCategory.CODING in meta.task_types:
            meta.processing_stage = ProcessingStage.REFINING
            final_result = self._refine(trail, final_result, context)

        # 8. augment with search
        if TaskCategory.WEB_SEARCH in meta.task_types:
            meta.processing_stage = ProcessingStage.SEARCHING
            draft = final_result
            final_result = self._attempt(
                trail, "search",
                lambda: self.stages.augment_search(request.prompt, draft),
                fallback=draft,
            )

        return self._complete(ctx, trail, final_result)

    def _refine(self, trail: List[StageResult], draft: str, context: str) -> str:
        try:
            refinement = self.stages.refine_code(draft, context)
        except Exception as e:
            logger.warning(f"Code refinement failed, using unrefined result: {e}")
            trail.append(StageResult(stage="refine", ok=False, output=draft, fallback_applied=True, error=str(e)))
            return draft

        failed = refinement.error is not None
        trail.append(StageResult(
            stage="refine",
            ok=not failed,
            output=refinement.text,
            fallback_applied=failed,
            error=refinement.error,
        ))
        return refinement.text

    def _complete(self, ctx: PipelineContext, trail: List[StageResult], final: str) -> PipelineResult:
        ctx.metadata.processing_stage = ProcessingStage.COMPLETED
        self.reporter.add_assistant_message(ctx.request.project_id, final, ctx.metadata.to_dict())
        degraded = [s.stage for s in trail if s.degraded]
        if degraded:
            logger.info(f"Pipeline completed with fallbacks in: {', '.join(degraded)}")
        else:
            logger.info("Pipeline completed successfully")
        return PipelineResult(ok=True, final=final, metadata=ctx.metadata, stages=trail)

    def _attempt(
        self,
        trail: List[StageResult],
        stage: str,
        compute: Callable[[], Any],
        fallback: Any,
        accept: Callable[[Any], bool] = bool,
    ) -> Any:
        """Run one stage; on error or an unusable (by default empty) value use the fallback."""
        try:
            value = compute()
        except Exception as e:
            logger.warning(f"Stage '{stage}' failed, using fallback: {e}")
            trail.append(StageResult(stage=stage, ok=False, output=fallback, fallback_applied=True, error=str(e)))
            return fallback

        if not accept(value):
            logger.info(f"Stage '{stage}' returned nothing usable, using fallback")
            trail.append(StageResult(stage=stage, ok=True, output=fallback, fallback_applied=True))
            return fallback

        trail.append(StageResult(stage=stage, ok=True, output=value))
        return value

    def _report_progress(self, ctx: PipelineContext, message: str):
        try:
            self.reporter.add_assistant_message(ctx.request.project_id, message, ctx.metadata.to_dict())
        except Exception as e:
            logger.warning(f"Could not store progress update: {e}")
