"""SQLite Session 後端。

使用 Python 標準庫 sqlite3 持久化 Session，每個屬性一列，值以 JSON 序列化。
Server 重啟後 Session 自動恢復。
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Callable
from typing import Any

from session_core.config import DEFAULT_DB_PATH, SessionConfig
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


class SQLiteSessionBackend:
    """SQLite Session 後端。

    以 (session_id, data_key) 為主鍵儲存 Session 屬性，
    支援跨程序持久化，適合單機部署場景。
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        db_path: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """初始化 SQLite 後端。

        Args:
            config: Session 配置，未提供時使用預設值
            db_path: 資料庫檔案路徑，未提供時使用 config.db_path
            clock: 取得目前時間戳的函數
        """
        self.config = config or SessionConfig()
        self._db_path = db_path or self.config.db_path or DEFAULT_DB_PATH
        self._clock = clock
        self._error_message = ''
        self._conn = sqlite3.connect(self._db_path)
        self._create_table()
        logger.info('SQLite Session 後端已初始化', extra={'db_path': self._db_path})

    def _create_table(self) -> None:
        """建立資料表（若不存在）。"""
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session_data (
                session_id TEXT NOT NULL,
                data_key TEXT NOT NULL,
                data_value TEXT NOT NULL,
                PRIMARY KEY (session_id, data_key)
            )
            """
        )
        self._conn.commit()

    def _load(self, session_id: str) -> SessionData:
        cursor = self._conn.execute(
            'SELECT data_key, data_value FROM session_data WHERE session_id = ?',
            (session_id,),
        )
        return {key: json.loads(value) for key, value in cursor.fetchall()}

    def _load_all(self) -> dict[str, SessionData]:
        cursor = self._conn.execute(
            'SELECT session_id, data_key, data_value FROM session_data ORDER BY session_id'
        )
        sessions: dict[str, SessionData] = {}
        for session_id, key, value in cursor.fetchall():
            sessions.setdefault(session_id, {})[key] = json.loads(value)
        return sessions

    def _exists(self, session_id: str) -> bool:
        cursor = self._conn.execute(
            'SELECT 1 FROM session_data WHERE session_id = ? LIMIT 1',
            (session_id,),
        )
        return cursor.fetchone() is not None

    async def check_session_id(self, session_id: str, remote_addr: str | None = None) -> bool:
        """檢查 Session 是否有效。"""
        self._error_message = ''
        data = self._load(session_id) if session_id else None
        error = validate_session(data, self._clock(), self.config, remote_addr)
        if error:
            self._error_message = error
            logger.debug('Session 驗證失敗（SQLite）', extra={'session_id': session_id})
            return False
        return True

    def session_id_error_message(self) -> str:
        """取得最近一次 Session 處理的錯誤訊息。"""
        return self._error_message

    async def get_session_id_data(self, session_id: str) -> SessionData:
        """讀取 Session 資料，若無記錄則回傳空 dict。"""
        if not session_id:
            return {}
        data = self._load(session_id)
        logger.debug('讀取 Session（SQLite）', extra={'session_id': session_id, 'keys': len(data)})
        return data

    async def create_session_id(self, user_type: UserType, attributes: dict[str, Any]) -> str | None:
        """建立新 Session，客戶 Session 需通過數量上限檢查。"""
        self._error_message = ''
        now = self._clock()

        if user_type == 'Customer':
            active = count_active(self._load_all().values(), 'Customer', now, self.config)
            error = check_session_limits(active, str(attributes.get(KEY_USER_LOGIN, '')), self.config)
            if error:
                self._error_message = error
                logger.info('Session 數量已達上限（SQLite）', extra={'user_type': user_type})
                return None

        session_id = generate_session_id()
        data = build_session_data(user_type, attributes, now)
        self._conn.executemany(
            'INSERT INTO session_data (session_id, data_key, data_value) VALUES (?, ?, ?)',
            [(session_id, key, json.dumps(value, ensure_ascii=False)) for key, value in data.items()],
        )
        self._conn.commit()
        logger.debug('Session 已建立（SQLite）', extra={'session_id': session_id, 'user_type': user_type})
        return session_id

    async def remove_session_id(self, session_id: str) -> bool:
        """刪除 Session。"""
        cursor = self._conn.execute('DELETE FROM session_data WHERE session_id = ?', (session_id,))
        self._conn.commit()
        if cursor.rowcount <= 0:
            return False
        logger.debug('Session 已刪除（SQLite）', extra={'session_id': session_id})
        return True

    async def update_session_id(self, session_id: str, key: str, value: Any) -> bool:
        """更新 Session 的單一屬性。

        使用 UPSERT 語法：存在則更新，不存在則新增。
        """
        if not self._exists(session_id):
            return False

        self._conn.execute(
            """
            INSERT INTO session_data (session_id, data_key, data_value)
            VALUES (?, ?, ?)
            ON CONFLICT(session_id, data_key) DO UPDATE SET
                data_value = excluded.data_value
            """,
            (session_id, key, json.dumps(value, ensure_ascii=False)),
        )
        self._conn.commit()
        logger.debug('Session 已更新（SQLite）', extra={'session_id': session_id, 'key': key})
        return True

    async def get_expired_session_ids(self) -> ExpiredSessions:
        """取得已過期與閒置過久的 Session id。"""
        return classify_expired(self._load_all(), self._clock(), self.config)

    async def get_all_session_ids(self) -> list[str]:
        """取得所有 Session id。"""
        cursor = self._conn.execute(
            'SELECT DISTINCT session_id FROM session_data ORDER BY session_id'
        )
        return [row[0] for row in cursor.fetchall()]

    async def get_active_sessions(self, user_type: UserType) -> ActiveSessions:
        """統計指定身分類型的有效 Session。"""
        return count_active(self._load_all().values(), user_type, self._clock(), self.config)

    async def cleanup(self) -> bool:
        """刪除所有過期與閒置過久的 Session。"""
        expired, idle = await self.get_expired_session_ids()
        self._conn.executemany(
            'DELETE FROM session_data WHERE session_id = ?',
            [(session_id,) for session_id in [*expired, *idle]],
        )
        self._conn.commit()
        logger.info(
            'Session 清理完成（SQLite）',
            extra={'expired': len(expired), 'idle': len(idle)},
        )
        return True

    async def close(self) -> None:
        """關閉 SQLite 連線。"""
        self._conn.close()
        logger.info('SQLite Session 後端已關閉')
