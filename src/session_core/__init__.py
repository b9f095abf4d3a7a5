"""Session Core - 認證 Session 管理核心。"""

__version__ = '0.1.0'

from session_core.config import SessionConfig
from session_core.session import BackendRegistry, SessionBackend, SessionManager
from session_core.types import ActiveSessions, ExpiredSessions, UserType

__all__ = [
    'ActiveSessions',
    'BackendRegistry',
    'ExpiredSessions',
    'SessionBackend',
    'SessionConfig',
    'SessionManager',
    'UserType',
]
