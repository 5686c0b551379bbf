"""
In-memory chat persistence.

Holds chat messages and project files per project id so the orchestrator has
something to read history from and report replies to. Durable storage is
someone else's job; this store is lost on restart.
"""

import uuid
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.models.manager import ModelManager


@dataclass
class ChatRecord:
    """A stored chat message."""
    id: str
    project_id: str
    role: str #"user" | "assistant"
    message: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class FileRecord:
    project_id: str
    file_path: str
    content: str
    last_modified: datetime = field(default_factory=datetime.utcnow)


class ChatStore:
    """
    Thread-safe in-memory storage for chat messages and project files.

    Pipeline runs execute in worker threads and write assistant messages
    concurrently with request handlers, so every access holds the lock.
    """

    def __init__(self):
        self._messages: Dict[str, List[ChatRecord]] = {}
        self._files: Dict[str, Dict[str, FileRecord]] = {}
        self._lock = threading.Lock()

    def _append(self, project_id: str, role: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> ChatRecord:
        record = ChatRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            role=role,
            message=message,
            metadata=dict(metadata) if metadata else None,
        )
        with self._lock:
            self._messages.setdefault(project_id, []).append(record)
        return record

    def add_user_message(self, project_id: str, message: str) -> ChatRecord:
        return self._append(project_id, "user", message)

    def add_assistant_message(self, project_id: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> ChatRecord:
        return self._append(project_id, "assistant", message, metadata)

    def list_messages(self, project_id: str) -> List[ChatRecord]:
        """Messages in insertion order."""
        with self._lock:
            return list(self._messages.get(project_id, []))

    def upsert_file(self, project_id: str, file_path: str, content: str) -> FileRecord:
        record = FileRecord(project_id=project_id, file_path=file_path, content=content)
        with self._lock:
            self._files.setdefault(project_id, {})[file_path] = record
        return record

    def list_files(self, project_id: str) -> List[FileRecord]:
        with self._lock:
            return list(self._files.get(project_id, {}).values())

    def clear(self):
        with self._lock:
            self._messages.clear()
            self._files.clear()

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "projects": len(set(self._messages) | set(self._files)),
                "messages": sum(len(m) for m in self._messages.values()),
                "files": sum(len(f) for f in self._files.values()),
            }

# Global store instance
chat_store = ChatStore()

# FastAPI dependency functions
def get_chat_store() -> ChatStore:
    """FastAPI dependency to get the chat store."""
    return chat_store

def get_model_manager() -> ModelManager:
    """FastAPI dependency to get the model manager from app state."""
    from ..main import app_state
    return app_state["model_manager"]
