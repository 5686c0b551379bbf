"""
Pydantic models for API request/response schemas.

They are separate from the pipeline's internal types to keep the HTTP
boundary explicit.
"""
