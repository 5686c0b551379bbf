from __future__ import annotations
from typing import Any, Dict, Optional
import time
from os import getenv
import httpx

from .base import (
    ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelLoading, ModelTimeout,
    flatten_messages, normalize_generated_text,
)

DEFAULT_BASE_URL = "https://api-inference.huggingface.co/models"
RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


class HuggingFaceProvider(ModelProvider):
    """Text-generation inference API: one POST per model id, no retries here."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, request_timeout_s: float = 120, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or getenv("HF_API_BASE") or DEFAULT_BASE_URL).rstrip("/")
        self.request_timeout_s = request_timeout_s
        token = api_key or getenv("HUGGINGFACE_TOKEN", "")
        self.client = httpx.Client(
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=request_timeout_s,
            transport=transport,
        )

    def _payload(self, req: ChatRequest) -> Dict[str, Any]:
        params = dict(req.params or {})
        parameters = {
            "max_new_tokens": params.pop("max_tokens", 2048),
            "temperature": params.pop("temperature", 0.7),
            "return_full_text": False,
        }
        parameters.update(params)
        return {"inputs": flatten_messages(req.messages), "parameters": parameters}

    def chat(self, req: ChatRequest) -> ModelResponse:
        url = f"{self.base_url}/{req.model}"
        t0 = time.perf_counter()
        try:
            response = self.client.post(url, json=self._payload(req))
        except httpx.TimeoutException as e:
            raise ModelTimeout(f"HF timeout after {self.request_timeout_s}s for {req.model}: {e}") from e
        except httpx.TransportError as e:
            raise ModelRetryable(f"HF transport error for {req.model}: {e}") from e

        dt = time.perf_counter() - t0

        if response.status_code >= 400:
            msg = f"HF API error ({response.status_code}) from {req.model}: {response.text}"
            if response.status_code == 503:
                raise ModelLoading(msg)
            if response.status_code in RETRYABLE_STATUS:
                raise ModelRetryable(msg)
            raise ModelError(msg)

        # bare-string bodies are valid generations too
        try:
            data = response.json()
        except ValueError:
            data = response.text

        meta = {"provider": "huggingface", "model": req.model, "latency": dt, "status_code": response.status_code}
        return ModelResponse(content=normalize_generated_text(data), raw=data, meta=meta)

    def health_check(self) -> bool:
        try:
            response = self.client.get(self.base_url)
            return response.status_code < 500
        except Exception:
            return False

    def cleanup(self):
        self.client.close()
