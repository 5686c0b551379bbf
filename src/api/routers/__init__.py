"""
API route handlers grouped by area: health, chat, orchestrator.
"""
