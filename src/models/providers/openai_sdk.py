from __future__ import annotations
from typing import Dict, Any, Optional
import time
from os import getenv

from openai import OpenAI
from openai import APIStatusError, APITimeoutError, APIConnectionError

from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelLoading, ModelTimeout

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


class OpenAIProvider(ModelProvider):
    """OpenAI-compatible chat completions (e.g. the Hugging Face router)."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, default_headers: Optional[Dict[str, str]] = None, timeout: float = 60.0, **kwargs):
        self.client = OpenAI(
            base_url=base_url,
            api_key=api_key or getenv("HUGGINGFACE_TOKEN") or getenv("OPENAI_API_KEY"),
            default_headers=default_headers or {},
            timeout=timeout,
            max_retries=0, #the gateway owns retries
            **kwargs
        )
        self.base_url = base_url
        self.timeout = timeout

    def chat(self, req: ChatRequest) -> ModelResponse:
        completion_params = {
            "model": req.model,
            "messages": req.messages,
            **dict(req.params or {})
        }

        t0 = time.perf_counter()
        try:
            response = self.client.chat.completions.create(**completion_params)
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI timeout: {e}") from e
        except APIConnectionError as e:
            raise ModelRetryable(f"OpenAI connection error: {e}") from e
        except APIStatusError as e:
            msg = f"OpenAI API error ({e.status_code}): {e}"
            if e.status_code == 503:
                raise ModelLoading(msg) from e
            if e.status_code in RETRYABLE_STATUS:
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e
        except Exception as e:
            raise ModelError(f"OpenAI provider error: {e}") from e

        dt = time.perf_counter() - t0

        try:
            content = response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise ModelError(f"Invalid response structure from OpenAI API: {e}") from e

        meta = {
            "provider": "openai",
            "model": getattr(response, 'model', req.model),
            "latency": dt,
            "base_url": self.base_url or "https://api.openai.com/v1",
        }

        if getattr(response, 'usage', None):
            meta["usage"] = response.usage.model_dump()

        if response.choices:
            meta["finish_reason"] = getattr(response.choices[0], 'finish_reason', None)

        return ModelResponse(content=content, raw=response, meta=meta)

    def health_check(self) -> bool:
        """SYNCHRONOUS health check - blocks until complete"""
        try:
            _ = self.client.models.list()
            return True
        except Exception:
            return False
