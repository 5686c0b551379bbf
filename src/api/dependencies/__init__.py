"""
FastAPI dependencies: the chat store, the model manager and the orchestrator.
"""
