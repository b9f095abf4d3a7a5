"""Session 後端介面定義。

定義後端 Protocol，以及所有內建後端共用的逾時判定、數量上限檢查規則。
"""

from __future__ import annotations

import math
import secrets
from collections.abc import Iterable, Mapping
from typing import Any, Literal, Protocol, runtime_checkable

from session_core.config import SessionConfig
from session_core.types import (
    KEY_CHALLENGE_TOKEN,
    KEY_LAST_REQUEST,
    KEY_REMOTE_ADDR,
    KEY_SESSION_START,
    KEY_USER_AGENT,
    KEY_USER_LOGIN,
    KEY_USER_TYPE,
    ActiveSessions,
    ExpiredSessions,
    SessionData,
    UserType,
)

# --- 錯誤訊息 ---
SESSION_INVALID_MESSAGE = 'Session 無效，請重新登入。'
SESSION_TIMEOUT_MESSAGE = 'Session 已逾時，請重新登入。'
REMOTE_ADDR_CHANGED_MESSAGE = '遠端位址已變更，請重新登入。'
SESSION_LIMIT_MESSAGE = '已達 Session 數量上限，請稍後再試。'
SESSION_PER_USER_LIMIT_MESSAGE = '已達此使用者的 Session 數量上限。'
MISSING_USER_TYPE_MESSAGE = '未提供 UserType。'
INVALID_USER_TYPE_MESSAGE = 'UserType 不正確，只接受 User 或 Customer。'
RESERVED_KEY_MESSAGE = "屬性名稱不可包含 ':'。"

SessionState = Literal['active', 'expired', 'idle']


@runtime_checkable
class SessionBackend(Protocol):
    """Session 後端 Protocol。

    定義 Session 的儲存介面，實作者負責持久化、逾時判定與數量上限。
    """

    async def check_session_id(self, session_id: str, remote_addr: str | None = None) -> bool:
        """檢查 Session 是否有效。

        Args:
            session_id: 會話識別符
            remote_addr: 目前請求的遠端位址（可選，用於比對）

        Returns:
            有效回傳 True，否則回傳 False 並記錄錯誤訊息
        """
        ...

    def session_id_error_message(self) -> str:
        """取得最近一次 Session 處理的錯誤訊息。"""
        ...

    async def get_session_id_data(self, session_id: str) -> SessionData:
        """讀取 Session 資料。

        Args:
            session_id: 會話識別符

        Returns:
            Session 屬性對應表，若無記錄則回傳空 dict
        """
        ...

    async def create_session_id(self, user_type: UserType, attributes: dict[str, Any]) -> str | None:
        """建立新 Session。

        Args:
            user_type: 身分類型
            attributes: Session 屬性（user_login、remote_addr、偏好設定等）

        Returns:
            新的會話識別符，若違反數量上限則回傳 None
        """
        ...

    async def remove_session_id(self, session_id: str) -> bool:
        """刪除 Session。

        Args:
            session_id: 會話識別符

        Returns:
            有刪除回傳 True，Session 不存在回傳 False
        """
        ...

    async def update_session_id(self, session_id: str, key: str, value: Any) -> bool:
        """更新 Session 的單一屬性。

        Args:
            session_id: 會話識別符
            key: 屬性名稱
            value: 屬性值（需可 JSON 序列化）

        Returns:
            成功回傳 True，Session 不存在回傳 False
        """
        ...

    async def get_expired_session_ids(self) -> ExpiredSessions:
        """取得已過期與閒置過久的 Session id。"""
        ...

    async def get_all_session_ids(self) -> list[str]:
        """取得所有 Session id。"""
        ...

    async def get_active_sessions(self, user_type: UserType) -> ActiveSessions:
        """統計指定身分類型的有效 Session。

        Args:
            user_type: 身分類型

        Returns:
            有效 Session 總數與每位使用者的數量
        """
        ...

    async def cleanup(self) -> bool:
        """刪除所有過期與閒置過久的 Session。"""
        ...

    async def close(self) -> None:
        """釋放後端資源。"""
        ...


# =========================================================================
# 共用規則
# =========================================================================


def generate_session_id() -> str:
    """產生不可預測的會話識別符。"""
    return secrets.token_urlsafe(32)


def build_session_data(
    user_type: UserType,
    attributes: Mapping[str, Any],
    now: float,
) -> SessionData:
    """組合新 Session 的完整資料。

    內建屬性（身分類型、建立時間、最後請求時間、challenge token）會覆寫呼叫端傳入的同名值。

    Args:
        user_type: 身分類型
        attributes: 呼叫端傳入的屬性
        now: 目前時間戳

    Returns:
        Session 資料
    """
    data: SessionData = dict(attributes)
    data.setdefault(KEY_USER_LOGIN, '')
    data.setdefault(KEY_REMOTE_ADDR, '')
    data.setdefault(KEY_USER_AGENT, '')
    data[KEY_USER_TYPE] = user_type
    data[KEY_SESSION_START] = now
    data[KEY_LAST_REQUEST] = now
    data[KEY_CHALLENGE_TOKEN] = secrets.token_urlsafe(16)
    return data


def _timestamp(value: Any) -> float | None:
    """將時間戳轉為 float，無法解析或非有限值時回傳 None。"""
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return result if math.isfinite(result) else None


def session_state(data: Mapping[str, Any], now: float, config: SessionConfig) -> SessionState:
    """判定 Session 狀態。

    絕對存活時間優先判定，因此同一 Session 不會同時屬於 expired 與 idle。
    時間戳無法解析的 Session 視為已過期，由清理流程移除。
    """
    session_start = _timestamp(data.get(KEY_SESSION_START, 0))
    last_request = _timestamp(data.get(KEY_LAST_REQUEST, session_start))
    if session_start is None or last_request is None:
        return 'expired'

    if now - session_start > config.session_max_time:
        return 'expired'
    if now - last_request > config.session_max_idle_time:
        return 'idle'
    return 'active'


def _by_session_start(sessions: Mapping[str, SessionData]) -> list[tuple[str, SessionData]]:
    return sorted(
        sessions.items(),
        key=lambda item: (_timestamp(item[1].get(KEY_SESSION_START, 0)) or 0.0, item[0]),
    )


def classify_expired(
    sessions: Mapping[str, SessionData],
    now: float,
    config: SessionConfig,
) -> ExpiredSessions:
    """將 Session 分類為已過期與閒置過久兩個清單。

    Args:
        sessions: session id 對應 Session 資料
        now: 目前時間戳
        config: Session 配置

    Returns:
        依建立時間排序的兩個互斥清單
    """
    expired: list[str] = []
    idle: list[str] = []
    for session_id, data in _by_session_start(sessions):
        state = session_state(data, now, config)
        if state == 'expired':
            expired.append(session_id)
        elif state == 'idle':
            idle.append(session_id)
    return ExpiredSessions(expired=expired, idle=idle)


def count_active(
    sessions: Iterable[SessionData],
    user_type: UserType,
    now: float,
    config: SessionConfig,
) -> ActiveSessions:
    """統計指定身分類型的有效 Session。

    Args:
        sessions: Session 資料
        user_type: 身分類型
        now: 目前時間戳
        config: Session 配置

    Returns:
        有效 Session 總數與每位使用者的數量
    """
    per_user: dict[str, int] = {}
    total = 0
    for data in sessions:
        if data.get(KEY_USER_TYPE) != user_type:
            continue
        if session_state(data, now, config) != 'active':
            continue
        login = str(data.get(KEY_USER_LOGIN, ''))
        per_user[login] = per_user.get(login, 0) + 1
        total += 1
    return ActiveSessions(total=total, per_user=per_user)


def check_session_limits(
    active: ActiveSessions,
    user_login: str,
    config: SessionConfig,
) -> str | None:
    """檢查新增一個客戶 Session 是否會超過數量上限。

    Args:
        active: 目前的客戶有效 Session 統計
        user_login: 要建立 Session 的客戶登入名稱
        config: Session 配置

    Returns:
        超過上限時回傳錯誤訊息，否則回傳 None
    """
    limit = config.customer_session_limit
    if limit and active['total'] >= limit:
        return SESSION_LIMIT_MESSAGE

    per_user_limit = config.customer_session_per_user_limit
    if per_user_limit and active['per_user'].get(user_login, 0) >= per_user_limit:
        return SESSION_PER_USER_LIMIT_MESSAGE

    return None


def validate_session(
    data: Mapping[str, Any] | None,
    now: float,
    config: SessionConfig,
    remote_addr: str | None = None,
) -> str | None:
    """驗證 Session 資料。

    Args:
        data: Session 資料，None 或空 dict 表示不存在
        now: 目前時間戳
        config: Session 配置
        remote_addr: 目前請求的遠端位址

    Returns:
        無效時回傳錯誤訊息，有效回傳 None
    """
    if not data:
        return SESSION_INVALID_MESSAGE

    if (
        config.check_remote_ip
        and remote_addr is not None
        and data.get(KEY_REMOTE_ADDR)
        and data.get(KEY_REMOTE_ADDR) != remote_addr
    ):
        return REMOTE_ADDR_CHANGED_MESSAGE

    if session_state(data, now, config) != 'active':
        return SESSION_TIMEOUT_MESSAGE

    return None
