"""
Health check endpoints for monitoring and diagnostics.
"""

import time
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ..models.common import HealthStatus
from ..dependencies.store import get_chat_store, get_model_manager, ChatStore
from src.models.manager import ModelManager

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()

@router.get("/", response_model=HealthStatus)
async def health_check(
    store: ChatStore = Depends(get_chat_store),
    model_manager: ModelManager = Depends(get_model_manager)
):
    """
    Basic health check endpoint.

    Reports store contents and the model configuration without calling the
    model backend.
    """
    uptime = time.time() - _server_start_time
    dependencies = {}

    try:
        stats = store.get_stats()
        dependencies["chat_store"] = f"✅ Active ({stats['messages']} messages, {stats['projects']} projects)"
    except Exception as e:
        dependencies["chat_store"] = f"❌ Error: {str(e)}"

    try:
        dependencies["model_router"] = (
            f"✅ {len(model_manager.candidates)} categories via '{model_manager.gateway_provider_name}'"
        )
    except Exception as e:
        dependencies["model_router"] = f"❌ Error: {str(e)}"

    return HealthStatus(
        status="healthy",
        version="1.0.0",
        uptime=uptime,
        dependencies=dependencies
    )

def _backend_healthy(model_manager: ModelManager) -> bool:
    return model_manager.gateway.provider.health_check()

@router.get("/ready")
async def readiness_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Readiness probe: 200 with ready=True only when the model backend answers.
    Provider setup and the backend check block, so they run in the threadpool.
    """
    try:
        backend_ok = await run_in_threadpool(_backend_healthy, model_manager)
    except Exception as e:
        return {"ready": False, "reason": f"Model provider unavailable: {e}"}

    if not backend_ok:
        return {"ready": False, "reason": "Model backend health check failed"}

    return {"ready": True, "message": "Service ready to handle requests", "stats": model_manager.get_stats()}
