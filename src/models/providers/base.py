from __future__ import annotations
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Sequence

#unified model errors
class ModelError(RuntimeError): ...
class ModelTimeout(ModelError): ...
class ModelRetryable(ModelError): ...
class ModelLoading(ModelRetryable): ... #backend reported the model is still loading (503)


class ModelCallFailed(ModelError):
    """A single model exhausted its retry budget."""

    def __init__(self, model_id: str, attempts: int, cause: Optional[BaseException] = None):
        self.model_id = model_id
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Failed to call {model_id} after {attempts} attempts: {cause}")


class AllModelsExhausted(ModelError):
    """Every candidate model for a category failed."""

    def __init__(self, category: str, failures: Optional[Sequence[ModelCallFailed]] = None):
        self.category = category
        self.failures = list(failures or [])
        super().__init__(f"All models in category {category} failed")


@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: List[Dict[str, Any]]
    params: Dict[str, Any] | None = None #max_tokens, temperature, ...


@dataclass(frozen=True)
class ModelResponse:
    content: str
    raw: Any #provider-native response obj/dict
    meta: Dict[str, Any] #timings, model, status code, etc.


class ModelProvider(ABC):
    @abstractmethod
    def chat(self, req: ChatRequest) -> ModelResponse:
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> bool:
        raise NotImplementedError


def flatten_messages(messages: List[Dict[str, Any]]) -> str:
    """Collapse chat messages into a single text-generation prompt."""
    parts = [str(m.get("content", "")).strip() for m in messages]
    return "\n\n".join(p for p in parts if p)


def normalize_generated_text(data: Any) -> str:
    """
    Reduce the payload shapes text-generation backends return to plain text.

    Recognised: [{"generated_text": ...}], {"generated_text": ...},
    {"choices": [{"message": {"content": ...}}]} and bare strings. Anything
    else is serialized rather than dropped.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, list) and data and isinstance(data[0], dict):
        text = data[0].get("generated_text")
        if isinstance(text, str):
            return text
    if isinstance(data, dict):
        text = data.get("generated_text")
        if isinstance(text, str):
            return text
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content")
            if isinstance(content, str):
                return content
    return json.dumps(data, default=str)
