"""
Common API models shared by all endpoints: the response envelope and health status.
"""

from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime

class APIResponse(BaseModel):
    """Base response wrapper for all API endpoints."""
    success: bool = Field(..., description="Whether the request was successful")
    message: Optional[str] = Field(None, description="Human-readable response message")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    uptime: float = Field(..., description="Uptime in seconds")
    dependencies: Dict[str, str] = Field(..., description="Status of external dependencies")
