"""Redis Session 後端。

每個 Session 存成一個 hash（欄位值以 JSON 序列化），另以一個 set 索引所有 session id。
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

import redis.asyncio as redis

from session_core.config import SessionConfig
from session_core.session.base import (
    build_session_data,
    check_session_limits,
    classify_expired,
    count_active,
    generate_session_id,
    validate_session,
)
from session_core.types import KEY_USER_LOGIN, ActiveSessions, ExpiredSessions, SessionData, UserType

logger = logging.getLogger(__name__)

# Redis key 模板
_KEY_TEMPLATE = '{prefix}:{session_id}'
_INDEX_KEY_TEMPLATE = '{prefix}:index'


def _client_from_url(redis_url: str) -> redis.Redis:
    """依 URL 建立 Redis 異步連接。"""
    # 解析 URL 並直接建構 Redis，避免 from_url 的 stub 類型未知問題
    parsed = urlparse(redis_url)
    return redis.Redis(
        host=parsed.hostname or 'localhost',
        port=parsed.port or 6379,
        db=int(parsed.path.lstrip('/') or 0),
        password=parsed.password,
        decode_responses=True,
    )


class RedisSessionBackend:
    """Redis Session 後端。

    適合多個應用程序共用 Session 的部署場景。

    Attributes:
        _redis: Redis 異步連接（需啟用 decode_responses）
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        client: redis.Redis | None = None,
        key_prefix: str = 'session',
        clock: Callable[[], float] = time.time,
    ) -> None:
        """初始化 Redis 後端。

        Args:
            config: Session 配置，未提供時使用預設值
            client: 已建立的 Redis 連接，未提供時依 config.redis_url 建立
            key_prefix: Redis key 前綴
            clock: 取得目前時間戳的函數
        """
        self.config = config or SessionConfig()
        self._redis = client if client is not None else _client_from_url(self.config.redis_url)
        self._prefix = key_prefix
        self._clock = clock
        self._error_message = ''
        logger.info('Redis Session 後端已初始化', extra={'key_prefix': key_prefix})

    def _key(self, session_id: str) -> str:
        """生成 Session 資料的 Redis key。"""
        return _KEY_TEMPLATE.format(prefix=self._prefix, session_id=session_id)

    def _index_key(self) -> str:
        """生成 Session 索引的 Redis key。"""
        return _INDEX_KEY_TEMPLATE.format(prefix=self._prefix)

    async def _load(self, session_id: str) -> SessionData:
        raw: dict[str, str] = await self._redis.hgetall(self._key(session_id))
        return {key: json.loads(value) for key, value in raw.items()}

    async def _load_all(self) -> dict[str, SessionData]:
        sessions: dict[str, SessionData] = {}
        for session_id in sorted(await self._redis.smembers(self._index_key())):
            data = await self._load(session_id)
            if data:
                sessions[session_id] = data
            else:
                # 清除失效的索引項目
                await self._redis.srem(self._index_key(), session_id)
        return sessions

    async def check_session_id(self, session_id: str, remote_addr: str | None = None) -> bool:
        """檢查 Session 是否有效。"""
        self._error_message = ''
        data = await self._load(session_id) if session_id else None
        error = validate_session(data, self._clock(), self.config, remote_addr)
        if error:
            self._error_message = error
            logger.debug('Session 驗證失敗（Redis）', extra={'session_id': session_id})
            return False
        return True

    def session_id_error_message(self) -> str:
        """取得最近一次 Session 處理的錯誤訊息。"""
        return self._error_message

    async def get_session_id_data(self, session_id: str) -> SessionData:
        """讀取 Session 資料，若無記錄則回傳空 dict。"""
        if not session_id:
            return {}
        return await self._load(session_id)

    async def create_session_id(self, user_type: UserType, attributes: dict[str, Any]) -> str | None:
        """建立新 Session，客戶 Session 需通過數量上限檢查。"""
        self._error_message = ''
        now = self._clock()

        if user_type == 'Customer':
            sessions = await self._load_all()
            active = count_active(sessions.values(), 'Customer', now, self.config)
            error = check_session_limits(active, str(attributes.get(KEY_USER_LOGIN, '')), self.config)
            if error:
                self._error_message = error
                logger.info('Session 數量已達上限（Redis）', extra={'user_type': user_type})
                return None

        session_id = generate_session_id()
        data = build_session_data(user_type, attributes, now)
        await self._redis.hset(
            self._key(session_id),
            mapping={key: json.dumps(value, ensure_ascii=False) for key, value in data.items()},
        )
        if self.config.session_max_time > 0:
            # 超過絕對存活時間後由 Redis 自動移除，索引項目於下次讀取時清除
            await self._redis.expire(self._key(session_id), self.config.session_max_time)
        await self._redis.sadd(self._index_key(), session_id)
        logger.debug('Session 已建立（Redis）', extra={'session_id': session_id, 'user_type': user_type})
        return session_id

    async def remove_session_id(self, session_id: str) -> bool:
        """刪除 Session。"""
        deleted = await self._redis.delete(self._key(session_id))
        await self._redis.srem(self._index_key(), session_id)
        if not deleted:
            return False
        logger.debug('Session 已刪除（Redis）', extra={'session_id': session_id})
        return True

    async def update_session_id(self, session_id: str, key: str, value: Any) -> bool:
        """更新 Session 的單一屬性。"""
        if not await self._redis.exists(self._key(session_id)):
            return False

        await self._redis.hset(self._key(session_id), key, json.dumps(value, ensure_ascii=False))
        logger.debug('Session 已更新（Redis）', extra={'session_id': session_id, 'key': key})
        return True

    async def get_expired_session_ids(self) -> ExpiredSessions:
        """取得已過期與閒置過久的 Session id。"""
        return classify_expired(await self._load_all(), self._clock(), self.config)

    async def get_all_session_ids(self) -> list[str]:
        """取得所有 Session id。"""
        return sorted(await self._redis.smembers(self._index_key()))

    async def get_active_sessions(self, user_type: UserType) -> ActiveSessions:
        """統計指定身分類型的有效 Session。"""
        sessions = await self._load_all()
        return count_active(sessions.values(), user_type, self._clock(), self.config)

    async def cleanup(self) -> bool:
        """刪除所有過期與閒置過久的 Session。"""
        expired, idle = await self.get_expired_session_ids()
        stale = [*expired, *idle]
        if stale:
            await self._redis.delete(*(self._key(session_id) for session_id in stale))
            await self._redis.srem(self._index_key(), *stale)
        logger.info(
            'Session 清理完成（Redis）',
            extra={'expired': len(expired), 'idle': len(idle)},
        )
        return True

    async def close(self) -> None:
        """關閉 Redis 連接。"""
        await self._redis.aclose()
        logger.info('Redis Session 後端已關閉')
