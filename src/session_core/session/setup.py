"""Session 後端註冊工廠模組。

提供建立預設後端註冊表的工廠函數。
"""

from __future__ import annotations

from session_core.config import SessionConfig
from session_core.session.base import SessionBackend
from session_core.session.memory_backend import MemorySessionBackend
from session_core.session.registry import BackendRegistry
from session_core.session.sqlite_backend import SQLiteSessionBackend


def _create_memory(config: SessionConfig) -> SessionBackend:
    return MemorySessionBackend(config=config)


def _create_sqlite(config: SessionConfig) -> SessionBackend:
    return SQLiteSessionBackend(config=config)


def _create_redis(config: SessionConfig) -> SessionBackend:
    # 延遲匯入，未使用 Redis 時不需建立連線池
    from session_core.session.redis_backend import RedisSessionBackend

    return RedisSessionBackend(config=config)


def create_default_registry() -> BackendRegistry:
    """建立預設的後端註冊表，包含所有內建後端。

    Returns:
        已註冊 memory、sqlite、redis 後端的 BackendRegistry
    """
    registry = BackendRegistry()
    registry.register('memory', _create_memory)
    registry.register('sqlite', _create_sqlite)
    registry.register('redis', _create_redis)
    return registry
