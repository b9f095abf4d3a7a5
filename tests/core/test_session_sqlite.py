"""SQLite Session Backend 測試模組。

涵蓋：
- Rule: SQLite 後端應支援基本 CRUD 操作
- Rule: SQLite 後端應跨程序存活
- Rule: SQLite 後端應正確判定逾時並清理
- Rule: SQLite 後端應正確序列化偏好設定
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import allure
import pytest

from session_core.config import SessionConfig
from session_core.session.base import SESSION_PER_USER_LIMIT_MESSAGE, SessionBackend
from session_core.session.sqlite_backend import SQLiteSessionBackend
from tests.fakes import FakeClock

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """回傳暫存目錄中的資料庫檔案路徑。"""
    return tmp_path / 'test_session.db'


@pytest.fixture
def config(db_path: Path) -> SessionConfig:
    """建立短逾時的測試配置。"""
    return SessionConfig(
        backend='sqlite',
        db_path=str(db_path),
        session_max_time=100,
        session_max_idle_time=30,
        customer_session_per_user_limit=2,
    )


@pytest.fixture
async def backend(config: SessionConfig, clock: FakeClock) -> AsyncIterator[SQLiteSessionBackend]:
    """建立 SQLiteSessionBackend 實例。"""
    backend = SQLiteSessionBackend(config=config, clock=clock)
    yield backend
    await backend.close()


# =============================================================================
# Rule: SQLite 後端應支援基本 CRUD 操作
# =============================================================================


@allure.feature('Session 後端抽象')
@allure.story('SQLite 後端應支援基本 CRUD 操作')
class TestSQLiteBasicCRUD:
    """測試 SQLite 後端基本 CRUD 操作。"""

    @allure.title('建立並讀取 Session')
    async def test_create_and_get(self, backend: SQLiteSessionBackend) -> None:
        """Scenario: 建立並讀取 Session。"""
        session_id = await backend.create_session_id(
            'Customer', {'user_login': 'alice', 'remote_addr': '127.0.0.1'}
        )

        assert session_id
        data = await backend.get_session_id_data(session_id)
        assert data['user_login'] == 'alice'
        assert data['user_type'] == 'Customer'
        assert data['remote_addr'] == '127.0.0.1'

    @allure.title('讀取不存在的 Session')
    async def test_get_nonexistent_session(self, backend: SQLiteSessionBackend) -> None:
        """Scenario: 讀取不存在的 Session。"""
        assert await backend.get_session_id_data('not-exist') == {}
        assert await backend.get_session_id_data('') == {}

    @allure.title('更新既有屬性會覆寫舊值')
    async def test_update_overwrites_existing(self, backend: SQLiteSessionBackend) -> None:
        """更新既有屬性會覆寫舊值。"""
        session_id = await backend.create_session_id('User', {'user_login': 'root'})

        assert await backend.update_session_id(session_id, 'LastScreenOverview', 'first')
        assert await backend.update_session_id(session_id, 'LastScreenOverview', 'second')

        data = await backend.get_session_id_data(session_id)
        assert data['LastScreenOverview'] == 'second'

    @allure.title('更新不存在的 Session 不應建立資料')
    async def test_update_nonexistent_session(self, backend: SQLiteSessionBackend) -> None:
        """更新不存在的 Session 不應建立資料。"""
        assert not await backend.update_session_id('not-exist', 'LastScreen', 'x')
        assert await backend.get_all_session_ids() == []

    @allure.title('刪除 Session 不影響其他 Session')
    async def test_remove_one_session_preserves_others(self, backend: SQLiteSessionBackend) -> None:
        """Scenario: 刪除 Session 不影響其他 Session。"""
        first = await backend.create_session_id('User', {'user_login': 'a'})
        second = await backend.create_session_id('User', {'user_login': 'b'})

        assert await backend.remove_session_id(first)
        assert not await backend.remove_session_id(first)

        assert await backend.get_all_session_ids() == [second]
        assert (await backend.get_session_id_data(second))['user_login'] == 'b'

    @allure.title('列出所有 Session 依 id 排序')
    async def test_get_all_session_ids_sorted(self, backend: SQLiteSessionBackend) -> None:
        """列出所有 Session 依 id 排序。"""
        ids = [await backend.create_session_id('User', {'user_login': str(i)}) for i in range(3)]

        assert await backend.get_all_session_ids() == sorted(ids)

    @allure.title('客戶數量上限套用於 SQLite 後端')
    async def test_per_user_limit(self, backend: SQLiteSessionBackend) -> None:
        """客戶數量上限套用於 SQLite 後端。"""
        await backend.create_session_id('Customer', {'user_login': 'alice'})
        await backend.create_session_id('Customer', {'user_login': 'alice'})

        assert await backend.create_session_id('Customer', {'user_login': 'alice'}) is None
        assert backend.session_id_error_message() == SESSION_PER_USER_LIMIT_MESSAGE
        assert await backend.get_active_sessions('Customer') == {
            'total': 2,
            'per_user': {'alice': 2},
        }

    @allure.title('SQLiteSessionBackend 應符合 SessionBackend Protocol')
    async def test_implements_session_backend_protocol(self, backend: SQLiteSessionBackend) -> None:
        """SQLiteSessionBackend 應符合 SessionBackend Protocol。"""
        assert isinstance(backend, SessionBackend)


# =============================================================================
# Rule: SQLite 後端應跨程序存活
# =============================================================================


@allure.feature('Session 後端抽象')
@allure.story('SQLite 後端應跨程序存活')
class TestSQLitePersistence:
    """測試 SQLite 後端跨程序持久化。"""

    @allure.title('關閉後重新開啟仍保留資料')
    async def test_data_survives_reopen(self, config: SessionConfig, clock: FakeClock) -> None:
        """Scenario: 關閉後重新開啟仍保留資料。"""
        # 第一次：寫入
        backend1 = SQLiteSessionBackend(config=config, clock=clock)
        session_id = await backend1.create_session_id('User', {'user_login': 'root'})
        await backend1.update_session_id(session_id, 'LastScreenOverview', 'Dashboard')
        await backend1.close()

        # 第二次：用同一路徑建立新實例，模擬重啟
        backend2 = SQLiteSessionBackend(config=config, clock=clock)
        data = await backend2.get_session_id_data(session_id)
        await backend2.close()

        assert data['user_login'] == 'root'
        assert data['LastScreenOverview'] == 'Dashboard'

    @allure.title('明確指定的 db_path 優先於配置')
    async def test_explicit_db_path(self, tmp_path: Path, config: SessionConfig) -> None:
        """明確指定的 db_path 優先於配置。"""
        other = tmp_path / 'other.db'
        backend = SQLiteSessionBackend(config=config, db_path=str(other))
        await backend.create_session_id('User', {'user_login': 'root'})
        await backend.close()

        assert other.exists()


# =============================================================================
# Rule: SQLite 後端應正確判定逾時並清理
# =============================================================================


@allure.feature('Session 後端抽象')
@allure.story('SQLite 後端應正確判定逾時並清理')
class TestSQLiteExpiry:
    """測試逾時判定與清理。"""

    @allure.title('過期、閒置與有效 Session 分類')
    async def test_expired_classification(self, backend: SQLiteSessionBackend, clock: FakeClock) -> None:
        """Scenario: 過期、閒置與有效 Session 分類。"""
        expired = await backend.create_session_id('User', {'user_login': 'a'})
        clock.advance(80)
        idle = await backend.create_session_id('User', {'user_login': 'b'})
        clock.advance(25)
        active = await backend.create_session_id('User', {'user_login': 'c'})

        result = await backend.get_expired_session_ids()

        assert result.expired == [expired]
        assert result.idle == []
        assert active not in result.expired

        clock.advance(10)
        result = await backend.get_expired_session_ids()
        assert result.expired == [expired]
        assert result.idle == [idle]

    @allure.title('清理後只剩有效 Session')
    async def test_cleanup(self, backend: SQLiteSessionBackend, clock: FakeClock) -> None:
        """Scenario: 清理後只剩有效 Session。"""
        await backend.create_session_id('User', {'user_login': 'a'})
        clock.advance(31)
        active = await backend.create_session_id('User', {'user_login': 'b'})

        assert await backend.cleanup()

        assert await backend.get_all_session_ids() == [active]
        assert await backend.check_session_id(active)

    @allure.title('逾時 Session 檢查失敗')
    async def test_check_timed_out(self, backend: SQLiteSessionBackend, clock: FakeClock) -> None:
        """逾時 Session 檢查失敗。"""
        session_id = await backend.create_session_id('User', {'user_login': 'a'})
        clock.advance(31)

        assert not await backend.check_session_id(session_id)
        assert not await backend.check_session_id('')

    @allure.title('時間戳無法解析的 Session 視為已過期並可清理')
    @pytest.mark.parametrize('value', ['yesterday', None])
    async def test_corrupt_last_request(self, backend: SQLiteSessionBackend, value: object) -> None:
        """Scenario: 時間戳無法解析的 Session 視為已過期並可清理。"""
        broken = await backend.create_session_id('Customer', {'user_login': 'alice'})
        healthy = await backend.create_session_id('Customer', {'user_login': 'bob'})
        assert await backend.update_session_id(broken, 'last_request', value)

        assert await backend.get_expired_session_ids() == ([broken], [])
        assert await backend.get_active_sessions('Customer') == {'total': 1, 'per_user': {'bob': 1}}

        assert await backend.cleanup()
        assert await backend.get_all_session_ids() == [healthy]

    @allure.title('成功檢查後清除先前的錯誤訊息')
    async def test_error_message_cleared_after_success(self, backend: SQLiteSessionBackend) -> None:
        """成功檢查後清除先前的錯誤訊息。"""
        session_id = await backend.create_session_id('User', {'user_login': 'a'})

        assert not await backend.check_session_id('not-exist')
        assert backend.session_id_error_message()

        assert await backend.check_session_id(session_id)
        assert backend.session_id_error_message() == ''



# =============================================================================
# Rule: SQLite 後端應正確序列化偏好設定
# =============================================================================


@allure.feature('Session 後端抽象')
@allure.story('SQLite 後端應正確序列化偏好設定')
class TestSQLiteSerialization:
    """測試偏好設定的序列化。"""

    @allure.title('儲存巢狀結構與非 ASCII 字串')
    async def test_nested_values_preserved(self, backend: SQLiteSessionBackend) -> None:
        """Scenario: 儲存巢狀結構與非 ASCII 字串。"""
        preferences = {
            'queues': [1, 2, 3],
            'filters': {'state': ['open', 'new'], 'owner': None},
            'greeting': '您好',
            'page_size': 25,
            'compact': True,
        }
        session_id = await backend.create_session_id('User', {'user_login': 'root', **preferences})

        data = await backend.get_session_id_data(session_id)

        for key, value in preferences.items():
            assert data[key] == value
