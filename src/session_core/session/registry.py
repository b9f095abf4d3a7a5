"""Session 後端註冊表模組。

將配置中的後端名稱對應到建立後端的工廠函數。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from session_core.config import SessionConfig
from session_core.session.base import SessionBackend
from session_core.session.exceptions import UnknownBackendError

logger = logging.getLogger(__name__)

BackendFactory = Callable[[SessionConfig], SessionBackend]
"""依配置建立 Session 後端的工廠函數。"""


@dataclass
class BackendRegistry:
    """Session 後端註冊表。"""

    _factories: dict[str, BackendFactory] = field(default_factory=lambda: {})

    def register(self, name: str, factory: BackendFactory) -> None:
        """註冊後端工廠。

        Args:
            name: 後端名稱（對應 SessionConfig.backend）
            factory: 後端工廠函數

        Raises:
            ValueError: 後端名稱已存在
        """
        if name in self._factories:
            msg = f"Session 後端 '{name}' 已存在，不允許重複註冊"
            raise ValueError(msg)

        self._factories[name] = factory
        logger.info('Session 後端已註冊', extra={'backend': name})

    def list_backends(self) -> list[str]:
        """列出所有已註冊的後端名稱。

        Returns:
            後端名稱列表
        """
        return list(self._factories.keys())

    def create(self, config: SessionConfig) -> SessionBackend:
        """依配置建立後端。

        Args:
            config: Session 配置

        Returns:
            Session 後端實例

        Raises:
            UnknownBackendError: 後端名稱未註冊
        """
        factory = self._factories.get(config.backend)
        if factory is None:
            msg = f"無法載入 Session 後端 '{config.backend}'"
            raise UnknownBackendError(msg)

        logger.info('建立 Session 後端', extra={'backend': config.backend})
        return factory(config)
