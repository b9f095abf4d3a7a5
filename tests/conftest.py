"""全域測試設定。"""

from __future__ import annotations

import os

import pytest
from dotenv import load_dotenv

from tests.fakes import FakeClock

# 載入 .env，確保測試時也能讀取 Redis 位址等環境變數
load_dotenv()

# 匯入 session_app.main 時建立的全局管理器不應寫入磁碟
os.environ.setdefault('SESSION_BACKEND', 'memory')


@pytest.fixture
def clock() -> FakeClock:
    """建立從固定時間點開始的時鐘。"""
    return FakeClock()


def pytest_addoption(parser: pytest.Parser) -> None:
    """新增自訂命令列參數。"""
    parser.addoption(
        '--run-smoke',
        action='store_true',
        default=False,
        help='執行 smoke test（需要真實 Redis 服務）',
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """根據命令列參數決定是否跳過 smoke test。"""
    if config.getoption('--run-smoke'):
        return

    skip_smoke = pytest.mark.skip(reason='需要加 --run-smoke 才會執行')
    for item in items:
        if 'smoke' in item.keywords:
            item.add_marker(skip_smoke)
