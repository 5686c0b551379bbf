from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
import time
import logging

from tenacity import Retrying, RetryCallState, RetryError, stop_after_attempt, retry_if_exception_type

from .providers.base import ModelProvider, ChatRequest, ModelResponse, ModelLoading, ModelCallFailed

logger = logging.getLogger(__name__)

Prompt = Union[str, List[Dict[str, Any]]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    loading_backoff_s: float = 10.0 #wait when the backend says the model is still loading
    retry_backoff_s: float = 2.0 #wait after any other failure

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]]) -> "RetryPolicy":
        cfg = cfg or {}
        policy = cls(
            max_attempts=int(cfg.get("max_attempts", cls.max_attempts)),
            loading_backoff_s=float(cfg.get("loading_backoff_s", cls.loading_backoff_s)),
            retry_backoff_s=float(cfg.get("retry_backoff_s", cls.retry_backoff_s)),
        )
        if policy.max_attempts < 1:
            raise ValueError("retry.max_attempts must be at least 1")
        return policy


NO_DELAY = RetryPolicy(loading_backoff_s=0, retry_backoff_s=0)


class ModelGateway:
    """
    Sends one prompt to one model through a provider.

    Failures are retried per the RetryPolicy; once the budget is spent the
    last cause is wrapped in ModelCallFailed.
    """

    def __init__(self, provider: ModelProvider, policy: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception()
        if isinstance(exc, ModelLoading):
            return self.policy.loading_backoff_s
        return self.policy.retry_backoff_s

    def _log_retry(self, retry_state: RetryCallState):
        exc = retry_state.outcome.exception()
        model = retry_state.args[0].model if retry_state.args else "?"
        logger.warning(f"Attempt {retry_state.attempt_number} for {model} failed ({exc}); retrying in {retry_state.next_action.sleep:.1f}s")

    def call(self, model_id: str, prompt: Prompt, max_tokens: int = 2048, temperature: float = 0.7, retries: Optional[int] = None) -> ModelResponse:
        attempts = max(1, retries if retries is not None else self.policy.max_attempts)
        messages = [{"role": "user", "content": prompt}] if isinstance(prompt, str) else list(prompt)
        request = ChatRequest(
            model=model_id,
            messages=messages,
            params={"max_tokens": max_tokens, "temperature": temperature},
        )

        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=self._wait,
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )

        logger.info(f"Calling {model_id} (up to {attempts} attempts)")
        try:
            return retrying(self.provider.chat, request)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise ModelCallFailed(model_id, attempts, cause) from cause

    def call_model(self, model_id: str, prompt: Prompt, max_tokens: int = 2048, temperature: float = 0.7, retries: Optional[int] = None) -> str:
        return self.call(model_id, prompt, max_tokens=max_tokens, temperature=temperature, retries=retries).content
