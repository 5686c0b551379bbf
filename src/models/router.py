from __future__ import annotations
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from .gateway import ModelGateway, Prompt
from .providers.base import ModelCallFailed, ModelResponse, AllModelsExhausted

logger = logging.getLogger(__name__)


class TaskCategory(str, Enum):
    CODING = "CODING"
    THINKING = "THINKING"
    GENERATIVE = "GENERATIVE"
    CODE_ANALYSIS = "CODE_ANALYSIS"
    PLANNING = "PLANNING"
    CREATIVITY = "CREATIVITY"
    WEB_SEARCH = "WEB_SEARCH"

    @classmethod
    def parse(cls, value: Union[str, "TaskCategory"]) -> Optional["TaskCategory"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


DEFAULT_CATEGORY = TaskCategory.THINKING

CandidateMap = Mapping[TaskCategory, Tuple[str, ...]]


def build_candidate_map(raw: Mapping[str, Sequence[str]]) -> CandidateMap:
    """Validate a category -> models mapping: every category present, none empty."""
    candidates: Dict[TaskCategory, Tuple[str, ...]] = {}
    for name, models in raw.items():
        category = TaskCategory.parse(name)
        if category is None:
            raise ValueError(f"Unknown task category in config: '{name}'")
        if isinstance(models, str) or not models:
            raise ValueError(f"Category '{name}' must list at least one model")
        candidates[category] = tuple(str(m) for m in models)

    missing = [c.value for c in TaskCategory if c not in candidates]
    if missing:
        raise ValueError(f"Config missing models for categories: {', '.join(missing)}")
    return MappingProxyType(candidates)


class ModelRouter:
    """Tries the candidate models for a category in order; first success wins."""

    def __init__(self, gateway: ModelGateway, candidates: CandidateMap):
        self.gateway = gateway
        self.candidates = candidates

    def resolve(self, category: Union[str, TaskCategory]) -> Tuple[TaskCategory, Tuple[str, ...]]:
        parsed = TaskCategory.parse(category)
        if parsed is None:
            logger.warning(f"Unknown task category '{category}', falling back to {DEFAULT_CATEGORY.value}")
            parsed = DEFAULT_CATEGORY
        return parsed, self.candidates[parsed]

    def route(self, category: Union[str, TaskCategory], prompt: Prompt, max_tokens: int = 2048, temperature: float = 0.7, retries: Optional[int] = None) -> ModelResponse:
        resolved, models = self.resolve(category)
        failures: List[ModelCallFailed] = []

        for i, model_id in enumerate(models):
            logger.info(f"Trying model {i + 1}/{len(models)} for {resolved.value}: {model_id}")
            try:
                response = self.gateway.call(model_id, prompt, max_tokens=max_tokens, temperature=temperature, retries=retries)
            except ModelCallFailed as e:
                logger.warning(f"Model {model_id} failed, trying next model: {e.cause}")
                failures.append(e)
                continue
            logger.info(f"Used {model_id} for {resolved.value}")
            return response

        raise AllModelsExhausted(resolved.value, failures)

    def call_by_category(self, category: Union[str, TaskCategory], prompt: Prompt, max_tokens: int = 2048, temperature: float = 0.7, retries: Optional[int] = None) -> str:
        return self.route(category, prompt, max_tokens=max_tokens, temperature=temperature, retries=retries).content
