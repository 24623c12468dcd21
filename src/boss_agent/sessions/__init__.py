from .file_store import FileTaskSessionStore
from .manager import TaskSessionManager
from .store import InMemoryTaskSessionStore, TaskSessionStore

__all__ = [
    "TaskSessionStore",
    "InMemoryTaskSessionStore",
    "FileTaskSessionStore",
    "TaskSessionManager",
]
