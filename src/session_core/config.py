"""Session 統一配置模組。

提供 Session 管理器的配置資料結構，支援後端選擇、Session 數量上限與逾時設定。
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# 預設值
DEFAULT_BACKEND = 'sqlite'
DEFAULT_SESSION_MAX_TIME = 57600  # 16 小時
DEFAULT_SESSION_MAX_IDLE_TIME = 7200  # 2 小時
DEFAULT_DB_PATH = 'sessions.db'
DEFAULT_REDIS_URL = 'redis://localhost:6379/0'

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _env_int(name: str) -> int | None:
    """從環境變數讀取整數，未設定或空字串時回傳 None。"""
    raw = os.environ.get(name, '').strip()
    if not raw:
        return None
    return int(raw)


@dataclass(frozen=True)
class SessionConfig:
    """Session 管理器配置。

    建構後唯讀，由 SessionManager 與後端工廠共用。

    Attributes:
        backend: 後端識別名稱（memory / sqlite / redis）
        customer_session_limit: 客戶 Session 總數上限（None 或 0 表示不限制）
        customer_session_per_user_limit: 每位客戶的 Session 數上限（None 或 0 表示不限制）
        session_max_time: Session 絕對存活秒數
        session_max_idle_time: Session 最長閒置秒數
        check_remote_ip: 驗證 Session 時是否比對遠端位址
        db_path: SQLite 資料庫檔案路徑
        redis_url: Redis 連接 URL
    """

    backend: str = DEFAULT_BACKEND
    customer_session_limit: int | None = None
    customer_session_per_user_limit: int | None = None
    session_max_time: int = DEFAULT_SESSION_MAX_TIME
    session_max_idle_time: int = DEFAULT_SESSION_MAX_IDLE_TIME
    check_remote_ip: bool = True
    db_path: str = DEFAULT_DB_PATH
    redis_url: str = DEFAULT_REDIS_URL

    @classmethod
    def from_env(cls) -> SessionConfig:
        """從環境變數建立配置，未設定的欄位使用預設值。

        Returns:
            SessionConfig 實例

        Raises:
            ValueError: 數值型環境變數無法解析為整數
        """
        check_remote_ip = os.environ.get('SESSION_CHECK_REMOTE_IP')
        return cls(
            backend=os.environ.get('SESSION_BACKEND') or DEFAULT_BACKEND,
            customer_session_limit=_env_int('SESSION_CUSTOMER_LIMIT'),
            customer_session_per_user_limit=_env_int('SESSION_CUSTOMER_PER_USER_LIMIT'),
            session_max_time=_env_int('SESSION_MAX_TIME') or DEFAULT_SESSION_MAX_TIME,
            session_max_idle_time=(
                _env_int('SESSION_MAX_IDLE_TIME') or DEFAULT_SESSION_MAX_IDLE_TIME
            ),
            check_remote_ip=(
                True if check_remote_ip is None else check_remote_ip.lower() in _TRUE_VALUES
            ),
            db_path=os.environ.get('SESSION_DB_PATH') or DEFAULT_DB_PATH,
            redis_url=os.environ.get('SESSION_REDIS_URL') or DEFAULT_REDIS_URL,
        )
