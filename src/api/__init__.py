"""
FastAPI application layer for the Vicovibe orchestrator.

Exposes project chat (messages and files) and a synchronous pipeline endpoint
on top of the prompt orchestration pipeline.
"""
