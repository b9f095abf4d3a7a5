"""記憶體 Session 後端。

用於開發與測試環境，Session 存在記憶體中，程序結束即消失。
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

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


@dataclass
class MemorySessionBackend:
    """記憶體 Session 後端。

    將 Session 儲存在 dict 中，適合開發、測試使用。
    """

    config: SessionConfig = field(default_factory=SessionConfig)
    clock: Callable[[], float] = time.time
    _store: dict[str, SessionData] = field(default_factory=lambda: {})
    _error_message: str = ''

    async def check_session_id(self, session_id: str, remote_addr: str | None = None) -> bool:
        """檢查 Session 是否有效。"""
        self._error_message = ''
        error = validate_session(self._store.get(session_id), self.clock(), self.config, remote_addr)
        if error:
            self._error_message = error
            logger.debug('Session 驗證失敗（記憶體）', extra={'session_id': session_id})
            return False
        return True

    def session_id_error_message(self) -> str:
        """取得最近一次 Session 處理的錯誤訊息。"""
        return self._error_message

    async def get_session_id_data(self, session_id: str) -> SessionData:
        """讀取 Session 資料的深複製，若無記錄則回傳空 dict。"""
        data = self._store.get(session_id)
        if data is None:
            return {}
        return copy.deepcopy(data)

    async def create_session_id(self, user_type: UserType, attributes: dict[str, Any]) -> str | None:
        """建立新 Session，客戶 Session 需通過數量上限檢查。"""
        self._error_message = ''
        now = self.clock()

        if user_type == 'Customer':
            active = count_active(self._store.values(), 'Customer', now, self.config)
            error = check_session_limits(active, str(attributes.get(KEY_USER_LOGIN, '')), self.config)
            if error:
                self._error_message = error
                logger.info('Session 數量已達上限（記憶體）', extra={'user_type': user_type})
                return None

        session_id = generate_session_id()
        self._store[session_id] = copy.deepcopy(build_session_data(user_type, attributes, now))
        logger.debug('Session 已建立（記憶體）', extra={'session_id': session_id, 'user_type': user_type})
        return session_id

    async def remove_session_id(self, session_id: str) -> bool:
        """刪除 Session。"""
        if self._store.pop(session_id, None) is None:
            return False
        logger.debug('Session 已刪除（記憶體）', extra={'session_id': session_id})
        return True

    async def update_session_id(self, session_id: str, key: str, value: Any) -> bool:
        """更新 Session 的單一屬性。"""
        data = self._store.get(session_id)
        if data is None:
            return False
        data[key] = copy.deepcopy(value)
        logger.debug('Session 已更新（記憶體）', extra={'session_id': session_id, 'key': key})
        return True

    async def get_expired_session_ids(self) -> ExpiredSessions:
        """取得已過期與閒置過久的 Session id。"""
        return classify_expired(self._store, self.clock(), self.config)

    async def get_all_session_ids(self) -> list[str]:
        """取得所有 Session id。"""
        return list(self._store.keys())

    async def get_active_sessions(self, user_type: UserType) -> ActiveSessions:
        """統計指定身分類型的有效 Session。"""
        return count_active(self._store.values(), user_type, self.clock(), self.config)

    async def cleanup(self) -> bool:
        """刪除所有過期與閒置過久的 Session。"""
        expired, idle = await self.get_expired_session_ids()
        for session_id in [*expired, *idle]:
            self._store.pop(session_id, None)
        logger.info(
            'Session 清理完成（記憶體）',
            extra={'expired': len(expired), 'idle': len(idle)},
        )
        return True

    async def close(self) -> None:
        """記憶體後端無需釋放資源。"""
