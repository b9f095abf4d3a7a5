"""Session 通用例外模組。

呼叫端的輸入錯誤不會以例外回報（以 None / False 回傳），
這裡只定義配置錯誤等無法繼續執行的情況。
"""

from __future__ import annotations


class SessionError(Exception):
    """Session 基礎例外。"""


class UnknownBackendError(SessionError, KeyError):
    """指定的 Session 後端名稱未註冊。"""
