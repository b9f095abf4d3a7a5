"""型別定義模組。

定義 Session 子系統共用的型別與資料結構。
"""

from __future__ import annotations

from typing import Any, Literal, NamedTuple, TypedDict

UserType = Literal['User', 'Customer']
"""Session 所屬的身分領域：代理人（User）或客戶（Customer）。"""

USER_TYPES: tuple[UserType, ...] = ('User', 'Customer')

SessionData = dict[str, Any]
"""Session 屬性對應表（內建屬性與偏好設定）。"""

# --- 內建 Session 屬性 key ---
KEY_USER_LOGIN = 'user_login'
KEY_USER_TYPE = 'user_type'
KEY_SESSION_START = 'session_start'
KEY_LAST_REQUEST = 'last_request'
KEY_REMOTE_ADDR = 'remote_addr'
KEY_USER_AGENT = 'user_agent'
KEY_CHALLENGE_TOKEN = 'challenge_token'

# 保留給後端命名空間使用的分隔字元
RESERVED_KEY_DELIMITER = ':'


class ExpiredSessions(NamedTuple):
    """過期 Session 清單。

    兩個清單互斥，皆依 session 建立時間由舊到新排序。

    Attributes:
        expired: 超過絕對存活時間的 session id
        idle: 閒置過久的 session id
    """

    expired: list[str]
    idle: list[str]


class ActiveSessions(TypedDict):
    """指定身分類型的有效 Session 統計。

    Attributes:
        total: 有效 session 總數
        per_user: 每個使用者登入名稱對應的有效 session 數
    """

    total: int
    per_user: dict[str, int]
