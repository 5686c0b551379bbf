from __future__ import annotations
from typing import Optional, Dict, Any, Union
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum
from os import getenv
import yaml
import time
import logging
import threading
from contextlib import contextmanager

from .prompts import PromptManager
from .gateway import ModelGateway, RetryPolicy
from .router import ModelRouter, TaskCategory, build_candidate_map
from .providers.base import ModelError
from .providers.huggingface import HuggingFaceProvider
from .providers.openai_sdk import OpenAIProvider

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parents[1] / "config" / "config.yaml"
DEFAULT_PROMPTS_DIR = Path(__file__).parents[1] / "prompts"


class Provider(Enum):
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"


class Stage(Enum):
    CLASSIFY = "classify"
    OPTIMIZE = "optimize"
    PLAN = "plan"
    BREAKDOWN = "breakdown"
    EXECUTE = "execute"
    REFINE = "refine"
    SEARCH = "search"


@dataclass(frozen=True)
class StageConfig:
    prompt_ref: str #e.g. "orchestrator/classify@v1"
    category: Optional[TaskCategory] = None #None: chosen per request (execute)
    params: Dict[str, Any] = field(default_factory=dict)


def resolve_config_path(config_path: Union[Path, str, None] = None) -> Path:
    return Path(config_path or getenv("VICOVIBE_CONFIG") or DEFAULT_CONFIG_PATH)


class ModelManager:
    def __init__(self, config_path: Union[Path, str, None] = None, prompts_dir: Optional[Path] = None, retry_policy: Optional[RetryPolicy] = None):
        self.config_path = resolve_config_path(config_path)
        self.config = self._load_config()
        self.stages = self._load_stages()
        self.candidates = build_candidate_map(self.config['categories'])
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config.get('gateway', {}).get('retry'))
        self._providers = {}
        self._gateway: Optional[ModelGateway] = None
        self._router: Optional[ModelRouter] = None
        self._stats = {} #performance tracking
        self._stats_lock = threading.Lock()
        self._init_lock = threading.RLock() #router -> gateway -> provider nest

        #initialize prompt manager
        self.prompts = PromptManager(prompts_dir or DEFAULT_PROMPTS_DIR)

    def _load_config(self) -> Dict:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        for section in ('providers', 'categories', 'stages'):
            if section not in config:
                raise ValueError(f"Config missing '{section}'")

        for provider_name, provider_cfg in config['providers'].items():
            provider_type = (provider_cfg or {}).get('type')
            if provider_type not in {p.value for p in Provider}:
                raise ValueError(f"Provider '{provider_name}' has unknown type '{provider_type}'")

        gateway_provider = config.get('gateway', {}).get('provider')
        if gateway_provider is None:
            if len(config['providers']) != 1:
                raise ValueError("Config must name 'gateway.provider' when several providers are defined")
        elif gateway_provider not in config['providers']:
            raise ValueError(f"Gateway references unknown provider '{gateway_provider}'")

        return config

    def _load_stages(self) -> Dict[Stage, StageConfig]:
        stages = {}
        for stage_name, stage_cfg in self.config['stages'].items():
            try:
                stage = Stage(stage_name)
            except ValueError:
                raise ValueError(f"Unknown stage '{stage_name}'") from None
            if not stage_cfg or 'prompt_ref' not in stage_cfg:
                raise ValueError(f"Stage '{stage_name}' missing prompt_ref")

            category = None
            if stage_cfg.get('category') is not None:
                category = TaskCategory.parse(stage_cfg['category'])
                if category is None:
                    raise ValueError(f"Stage '{stage_name}' references unknown category '{stage_cfg['category']}'")

            stages[stage] = StageConfig(
                prompt_ref=stage_cfg['prompt_ref'],
                category=category,
                params=dict(stage_cfg.get('params') or {}),
            )

        missing = [s.value for s in Stage if s not in stages]
        if missing:
            raise ValueError(f"Config missing stages: {', '.join(missing)}")
        return stages

    @property
    def pipeline_settings(self) -> Dict[str, Any]:
        return self.config.get('pipeline') or {}

    def _get_provider(self, provider_name: str):
        with self._init_lock:
            if provider_name in self._providers:
                return self._providers[provider_name]
            if provider_name not in self.config['providers']:
                raise ValueError(f"Unknown provider: {provider_name}")

            provider_cfg = self.config["providers"][provider_name]
            provider_type = provider_cfg["type"]
            settings = provider_cfg.get("settings") or {}

            if provider_type == Provider.HUGGINGFACE.value:
                provider = HuggingFaceProvider(**settings)
            elif provider_type == Provider.OPENAI.value:
                provider = OpenAIProvider(**settings)
            else:
                raise ValueError(f"Unknown provider type: {provider_type}")
            self._providers[provider_name] = provider
            logger.info(f"initialized provider: {provider_name}")
            return provider

    @property
    def gateway_provider_name(self) -> str:
        return self.config.get('gateway', {}).get('provider') or next(iter(self.config['providers']))

    @property
    def gateway(self) -> ModelGateway:
        with self._init_lock:
            if self._gateway is None:
                self._gateway = ModelGateway(self._get_provider(self.gateway_provider_name), self.retry_policy)
            return self._gateway

    @property
    def router(self) -> ModelRouter:
        with self._init_lock:
            if self._router is None:
                self._router = ModelRouter(self.gateway, self.candidates)
            return self._router

    def call(self, stage: Union[Stage, str], variables: Dict[str, Any], category: Union[TaskCategory, str, None] = None, **params_override) -> str:
        """Render the stage's prompt and route it to the stage's (or the given) category."""
        start_time = time.perf_counter()

        stage = Stage(stage)
        stage_cfg = self.stages[stage]
        target = category or stage_cfg.category or TaskCategory.THINKING

        messages = self.prompts.render(stage_cfg.prompt_ref, variables)
        params = {**stage_cfg.params, **params_override}

        try:
            text = self.router.call_by_category(
                target,
                messages,
                max_tokens=params.get("max_tokens", 2048),
                temperature=params.get("temperature", 0.7),
                retries=params.get("retries"),
            )
        except ModelError:
            self._track_stats(stage.value, (time.perf_counter() - start_time) * 1000, success=False)
            raise

        self._track_stats(stage.value, (time.perf_counter() - start_time) * 1000, success=True)
        return text

    def _track_stats(self, stage: str, latency_ms: float, success: bool):
        with self._stats_lock:
            if stage not in self._stats:
                self._stats[stage] = {
                    'total_calls': 0,
                    'successful_calls': 0,
                    'total_latency_ms': 0
                }

            stats = self._stats[stage]
            stats['total_calls'] += 1
            if success:
                stats['successful_calls'] += 1
                stats['total_latency_ms'] += latency_ms

    def get_stats(self, stage: Optional[str] = None) -> Dict:
        if stage:
            return self._stats.get(stage, {})
        return self._stats

    def cleanup(self):
        with self._init_lock:
            for name, provider in self._providers.items():
                if hasattr(provider, 'cleanup'):
                    try:
                        provider.cleanup()
                        logger.info(f"Cleaned up provider: {name}")
                    except Exception as e:
                        logger.error(f"Cleanup failed for {name}: {e}")

            self._providers.clear()
            self._gateway = None
            self._router = None

    @contextmanager
    def session(self):
        try:
            yield self
        finally:
            self.cleanup()
