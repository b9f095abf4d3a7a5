"""Session 管理器模組。

提供統一的 Session 介面：驗證呼叫端輸入後轉交給目前配置的後端。
驗證失敗會記錄錯誤與錯誤訊息並回傳 None / False，不拋出例外；後端的例外則原樣傳出。
"""

from __future__ import annotations

import logging
from typing import Any, cast

from session_core.config import SessionConfig
from session_core.session.base import (
    INVALID_USER_TYPE_MESSAGE,
    MISSING_USER_TYPE_MESSAGE,
    RESERVED_KEY_MESSAGE,
    SessionBackend,
)
from session_core.session.registry import BackendRegistry
from session_core.session.setup import create_default_registry
from session_core.types import (
    RESERVED_KEY_DELIMITER,
    USER_TYPES,
    ActiveSessions,
    ExpiredSessions,
    SessionData,
    UserType,
)

logger = logging.getLogger(__name__)


def _user_type_error(user_type: str | None) -> str | None:
    """檢查身分類型，不合法時記錄錯誤並回傳錯誤訊息。"""
    if not user_type:
        logger.error('未提供 UserType', extra={'user_type': user_type})
        return MISSING_USER_TYPE_MESSAGE

    if user_type not in USER_TYPES:
        logger.error('UserType 不正確', extra={'user_type': user_type})
        return INVALID_USER_TYPE_MESSAGE

    return None


class SessionManager:
    """Session 管理器。

    本身不保存 Session 資料，只持有唯讀配置（Session 數量上限）、後端與最近一次輸入驗證的錯誤訊息。
    數量上限由後端在建立 Session 時套用。

    Attributes:
        backend: 目前使用的 Session 後端
        customer_session_limit: 客戶 Session 總數上限
        customer_session_per_user_limit: 每位客戶的 Session 數上限
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        backend: SessionBackend | None = None,
        registry: BackendRegistry | None = None,
    ) -> None:
        """初始化 Session 管理器。

        Args:
            config: Session 配置，未提供時使用預設值
            backend: 明確指定的後端，未提供時由註冊表依 config.backend 建立
            registry: 後端註冊表，未提供時使用預設註冊表

        Raises:
            UnknownBackendError: config.backend 未註冊
        """
        self.config = config or SessionConfig()
        if backend is None:
            backend = (registry or create_default_registry()).create(self.config)
        self.backend = backend
        self.customer_session_limit = self.config.customer_session_limit
        self.customer_session_per_user_limit = self.config.customer_session_per_user_limit
        self._error_message = ''

    async def check_session_id(self, session_id: str, remote_addr: str | None = None) -> bool:
        """檢查 Session 是否有效。

        Args:
            session_id: 會話識別符
            remote_addr: 目前請求的遠端位址（可選）

        Returns:
            有效回傳 True，否則回傳 False
        """
        self._error_message = ''
        return await self.backend.check_session_id(session_id, remote_addr)

    def session_id_error_message(self) -> str:
        """取得最近一次 Session 處理的錯誤訊息。

        管理器自身的輸入驗證錯誤優先，否則回傳後端的錯誤訊息。
        """
        return self._error_message or self.backend.session_id_error_message()

    async def get_session_id_data(self, session_id: str) -> SessionData:
        """讀取 Session 資料。

        Returns:
            Session 屬性對應表，例如::

                {
                    'user_login': 'root',
                    'user_type': 'User',
                    'session_start': 1293801801.0,
                    'remote_addr': '127.0.0.1',
                    'user_agent': 'Some User Agent x.x',
                    # 其餘偏好設定
                }
        """
        return await self.backend.get_session_id_data(session_id)

    async def create_session_id(self, user_type: str | None, **attributes: Any) -> str | None:
        """建立新 Session。

        Args:
            user_type: 身分類型，只接受 'User' 或 'Customer'
            **attributes: Session 屬性（user_login、remote_addr、user_agent 與偏好設定）

        Returns:
            新的會話識別符；身分類型不合法或後端拒絕時回傳 None
        """
        self._error_message = _user_type_error(user_type) or ''
        if self._error_message:
            return None

        return await self.backend.create_session_id(cast(UserType, user_type), attributes)

    async def remove_session_id(self, session_id: str) -> bool:
        """刪除 Session。"""
        return await self.backend.remove_session_id(session_id)

    async def update_session_id(self, session_id: str, key: str, value: Any) -> bool:
        """更新 Session 的單一屬性。

        Args:
            session_id: 會話識別符
            key: 屬性名稱，不可包含 ':'
            value: 屬性值

        Returns:
            成功回傳 True；key 含保留字元或後端更新失敗時回傳 False
        """
        self._error_message = ''
        if key and RESERVED_KEY_DELIMITER in key:
            logger.error(
                "無法更新屬性：不允許使用 ':'",
                extra={'session_id': session_id, 'key': key},
            )
            self._error_message = RESERVED_KEY_MESSAGE
            return False

        return await self.backend.update_session_id(session_id, key, value)

    async def get_expired_session_ids(self) -> ExpiredSessions:
        """取得已過期與閒置過久的 Session id。

        Returns:
            ExpiredSessions(expired=[...], idle=[...])
        """
        return await self.backend.get_expired_session_ids()

    async def get_all_session_ids(self) -> list[str]:
        """取得所有 Session id。"""
        return await self.backend.get_all_session_ids()

    async def get_active_sessions(self, user_type: str | None) -> ActiveSessions | None:
        """統計指定身分類型的有效 Session。

        Args:
            user_type: 身分類型，只接受 'User' 或 'Customer'

        Returns:
            {'total': 8, 'per_user': {'user1': 2, ...}}；身分類型不合法時回傳 None
        """
        self._error_message = _user_type_error(user_type) or ''
        if self._error_message:
            return None

        return await self.backend.get_active_sessions(cast(UserType, user_type))

    async def cleanup(self) -> bool:
        """刪除所有過期與閒置過久的 Session。"""
        return await self.backend.cleanup()

    async def close(self) -> None:
        """釋放後端資源。"""
        await self.backend.close()
