#!/usr/bin/env python3
"""
Development server launcher for the Vicovibe orchestrator API.

Set HUGGINGFACE_TOKEN (and optionally HF_API_BASE / VICOVIBE_CONFIG) before
starting. For production, use a proper ASGI server deployment.
"""

import logging
import uvicorn
from pathlib import Path

project_root = Path(__file__).parent
src_path = project_root / "src"

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger = logging.getLogger("run_server")
    logger.info("Starting Vicovibe orchestrator development server")
    logger.info("Server will be available at: http://localhost:8000")
    logger.info("API documentation at: http://localhost:8000/docs")

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",  # Accept connections from any IP
        port=8000,
        reload=True,     # Auto-reload on code changes (development only)
        reload_dirs=[str(src_path)],
        log_level="info"
    )
