"""Session 後端抽象層。

提供 Session 管理器與可抽換的 Session 後端，支援記憶體、SQLite 與 Redis 三種實作。
"""

from session_core.session.base import SessionBackend
from session_core.session.exceptions import SessionError, UnknownBackendError
from session_core.session.manager import SessionManager
from session_core.session.memory_backend import MemorySessionBackend
from session_core.session.registry import BackendRegistry
from session_core.session.setup import create_default_registry
from session_core.session.sqlite_backend import SQLiteSessionBackend

__all__ = [
    'BackendRegistry',
    'MemorySessionBackend',
    'SQLiteSessionBackend',
    'SessionBackend',
    'SessionError',
    'SessionManager',
    'UnknownBackendError',
    'create_default_registry',
]
