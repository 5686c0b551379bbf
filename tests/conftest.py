import pytest

from src.models.gateway import NO_DELAY
from src.models.manager import ModelManager, DEFAULT_CONFIG_PATH
from src.models.providers.base import ModelProvider, ChatRequest, ModelResponse, flatten_messages
from src.api.dependencies.store import ChatStore

# Text that identifies each shipped prompt template once rendered
STAGE_MARKERS = {
    "classify": "classify it into one or more of these categories",
    "optimize": "Rewrite this user request",
    "plan": "Create a detailed execution plan",
    "breakdown": "executable chunks",
    "execute": "Current task:",
    "refine": "Analyze this code and suggest improvements",
    "search": "Based on this query, provide comprehensive information",
}


class ScriptedProvider(ModelProvider):
    """
    Deterministic stand-in for the model backend.

    responses maps a stage name to a string, an exception instance, or a
    callable(prompt, model) returning either. Unscripted stages answer
    "<stage> output".
    """

    def __init__(self):
        self.responses = {}
        self.calls = []  # (stage, model, prompt)

    def chat(self, req: ChatRequest) -> ModelResponse:
        prompt = flatten_messages(req.messages)
        stage = next((s for s, marker in STAGE_MARKERS.items() if marker in prompt), "unknown")
        self.calls.append((stage, req.model, prompt))

        response = self.responses.get(stage, f"{stage} output")
        if callable(response) and not isinstance(response, BaseException):
            response = response(prompt, req.model)
        if isinstance(response, BaseException):
            raise response
        return ModelResponse(content=response, raw=response, meta={"provider": "scripted", "model": req.model})

    def health_check(self) -> bool:
        return True

    def stages_called(self):
        return [c[0] for c in self.calls]

    def calls_for(self, stage):
        return [c for c in self.calls if c[0] == stage]


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()


@pytest.fixture
def manager(scripted_provider):
    """ModelManager on the shipped config and prompts, backed by the scripted provider."""
    mm = ModelManager(DEFAULT_CONFIG_PATH, retry_policy=NO_DELAY)
    mm._providers[mm.gateway_provider_name] = scripted_provider
    return mm


@pytest.fixture
def store():
    return ChatStore()
