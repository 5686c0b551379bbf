"""
Stage functions of the orchestration pipeline.

Each stage renders its prompt through the ModelManager and parses the reply.
Stages raise on failure; choosing a fallback is the orchestrator's job.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.models.manager import ModelManager, Stage
from src.models.router import TaskCategory
from .types import ChatHistoryReader, ProjectFileReader

logger = logging.getLogger(__name__)

CHUNK_MARKER = "CHUNK:"
_CHUNK_PREFIX_RE = re.compile(rf"^{re.escape(CHUNK_MARKER)}\s*", re.IGNORECASE)
_CATEGORY_SPLIT_RE = re.compile(r"[,\s]+")


@dataclass(frozen=True)
class PipelineSettings:
    history_window: int = 5
    max_files: int = 3
    file_snippet_chars: int = 500
    min_chunks: int = 3
    max_chunks: int = 5
    refinement_passes: int = 2
    refinement_stop_phrases: Tuple[str, ...] = ("no changes needed", "looks good")

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "PipelineSettings":
        cfg = dict(cfg or {})
        if "refinement_stop_phrases" in cfg:
            cfg["refinement_stop_phrases"] = tuple(p.lower() for p in cfg["refinement_stop_phrases"])
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in cfg.items() if k in known})


@dataclass(frozen=True)
class RefinementResult:
    text: str
    error: Optional[str] = None #set when a pass failed and the loop stopped


def parse_categories(response: str) -> List[TaskCategory]:
    """Keep only known category names, in order of first appearance."""
    categories: List[TaskCategory] = []
    for token in _CATEGORY_SPLIT_RE.split(response.strip().upper()):
        # tolerate quoting like "CODING" or CODING.
        category = TaskCategory.parse(token.strip("\"'.`*:;"))
        if category is not None and category not in categories:
            categories.append(category)
    return categories


def parse_chunks(response: str, max_chunks: Optional[int] = None) -> List[str]:
    chunks = []
    for line in response.splitlines():
        line = line.strip()
        if not line.upper().startswith(CHUNK_MARKER):
            continue
        chunk = _CHUNK_PREFIX_RE.sub("", line).strip()
        if chunk:
            chunks.append(chunk)
    return chunks[:max_chunks] if max_chunks else chunks


def format_recent_chat(messages: Sequence[Any], window: int) -> str:
    recent = list(messages)[-window:] if window > 0 else []
    return "\n".join(f"{m.role}: {m.message}" for m in recent)


def format_code_context(files: Sequence[Any], max_files: int, snippet_chars: int) -> str:
    return "\n\n".join(
        f"File: {f.file_path}\n```\n{f.content[:snippet_chars]}\n```"
        for f in list(files)[:max_files]
    )


class PipelineStages:
    def __init__(self, manager: ModelManager, history: ChatHistoryReader, files: ProjectFileReader, settings: Optional[PipelineSettings] = None):
        self.model_manager = manager
        self.history = history
        self.files = files
        self.settings = settings or PipelineSettings.from_config(manager.pipeline_settings)

    def classify(self, prompt: str) -> List[TaskCategory]:
        """Empty list means the reply named no known category."""
        response = self.model_manager.call(Stage.CLASSIFY, {"prompt": prompt})
        return parse_categories(response)

    def inject_context(self, project_id: str) -> Tuple[str, str, str]:
        """Returns (recent_chat, code_context, memory)."""
        recent_chat = format_recent_chat(self.history.list_messages(project_id), self.settings.history_window)
        code_context = format_code_context(
            self.files.list_files(project_id), self.settings.max_files, self.settings.file_snippet_chars
        )
        memory = f"Recent Chat:\n{recent_chat}\n\nProject Code:\n{code_context}"
        return recent_chat, code_context, memory

    def optimize(self, prompt: str, context: str) -> str:
        response = self.model_manager.call(Stage.OPTIMIZE, {"prompt": prompt, "context": context})
        return response.strip()

    def plan(self, prompt: str, task_types: Sequence[TaskCategory]) -> str:
        response = self.model_manager.call(
            Stage.PLAN, {"prompt": prompt, "task_types": [t.value for t in task_types]}
        )
        return response.strip()

    def break_into_chunks(self, prompt: str, plan: str) -> List[str]:
        response = self.model_manager.call(Stage.BREAKDOWN, {
            "prompt": prompt,
            "plan": plan,
            "marker": CHUNK_MARKER,
            "min_chunks": self.settings.min_chunks,
            "max_chunks": self.settings.max_chunks,
        })
        return parse_chunks(response, self.settings.max_chunks)

    def execute_chunk(self, chunk: str, category: TaskCategory, memory: str) -> str:
        return self.model_manager.call(Stage.EXECUTE, {"chunk": chunk, "memory": memory}, category=category)

    def refine_code(self, code: str, context: str) -> RefinementResult:
        refined = code
        for i in range(self.settings.refinement_passes):
            logger.info(f"Code refinement pass {i + 1}/{self.settings.refinement_passes}")
            try:
                analysis = self.model_manager.call(Stage.REFINE, {"code": refined, "context": context})
            except Exception as e:
                logger.warning(f"Code refinement pass {i + 1} failed, keeping last result: {e}")
                return RefinementResult(text=refined, error=str(e))

            lowered = analysis.lower()
            if any(phrase in lowered for phrase in self.settings.refinement_stop_phrases):
                logger.info("Refinement reports no further changes")
                break
            refined = analysis

        return RefinementResult(text=refined)

    def augment_search(self, query: str, current_result: str) -> str:
        return self.model_manager.call(Stage.SEARCH, {"query": query, "current_result": current_result})
