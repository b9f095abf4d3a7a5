"""FastAPI 應用程序入口。

提供 Session 維護 API 端點：建立、查詢、更新、刪除與清理 Session。
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from session_core.config import SessionConfig
from session_core.session import SessionManager

# 在讀取配置之前加載 .env
load_dotenv()

logger = logging.getLogger(__name__)

# --- 全局單例 ---
session_manager = SessionManager(SessionConfig.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """應用程序生命週期管理。"""
    logger.info('應用程序啟動', extra={'backend': session_manager.config.backend})

    yield

    await session_manager.close()
    logger.info('應用程序關閉')


app = FastAPI(title='Session Admin API', lifespan=lifespan)


# --- 請求模型 ---
class CreateSessionRequest(BaseModel):
    """建立 Session 請求本體。"""

    user_type: str | None = None
    user_login: str
    remote_addr: str = ''
    user_agent: str = ''
    preferences: dict[str, Any] = Field(default_factory=dict)


class UpdateSessionRequest(BaseModel):
    """更新 Session 屬性請求本體。"""

    key: str
    value: Any = None


# --- Session 管理 API ---
@app.post('/api/sessions')
async def create_session(body: CreateSessionRequest) -> JSONResponse:
    """建立新 session。

    Returns:
        包含新 session_id 的回應（201），建立失敗時回傳 400
    """
    attributes: dict[str, Any] = {
        **body.preferences,
        'user_login': body.user_login,
        'remote_addr': body.remote_addr,
        'user_agent': body.user_agent,
    }
    # user_type 只能由請求欄位指定
    attributes.pop('user_type', None)

    session_id = await session_manager.create_session_id(body.user_type, **attributes)
    if session_id is None:
        message = session_manager.session_id_error_message() or '無法建立 Session'
        return JSONResponse({'error': message}, status_code=400)

    logger.info('建立新 session', extra={'session_id': session_id})
    return JSONResponse({'session_id': session_id}, status_code=201)


@app.get('/api/sessions')
async def list_sessions() -> JSONResponse:
    """列出所有 session id。"""
    session_ids = await session_manager.get_all_session_ids()
    return JSONResponse({'sessions': session_ids})


@app.get('/api/sessions/expired')
async def list_expired_sessions() -> JSONResponse:
    """列出已過期與閒置過久的 session id。"""
    expired, idle = await session_manager.get_expired_session_ids()
    return JSONResponse({'expired': expired, 'idle': idle})


@app.get('/api/sessions/active')
async def active_sessions(user_type: str | None = None) -> JSONResponse:
    """統計指定身分類型的有效 session。

    Args:
        user_type: 身分類型（User / Customer）

    Returns:
        有效 session 統計，身分類型不合法時回傳 400
    """
    result = await session_manager.get_active_sessions(user_type)
    if result is None:
        return JSONResponse(
            {'error': f"UserType '{user_type}' 不正確"},
            status_code=400,
        )
    return JSONResponse(dict(result))


@app.post('/api/sessions/cleanup')
async def cleanup_sessions() -> JSONResponse:
    """清理所有過期與閒置過久的 session。

    Returns:
        實際刪除的 session 數量
    """
    expired, idle = await session_manager.get_expired_session_ids()
    removed = 0
    for session_id in [*expired, *idle]:
        if await session_manager.remove_session_id(session_id):
            removed += 1

    logger.info('Session 已透過 API 清理', extra={'removed': removed})
    return JSONResponse({'status': 'ok', 'removed': removed})


@app.get('/api/sessions/{session_id}')
async def get_session(session_id: str) -> JSONResponse:
    """取得特定 session 的資料。

    Args:
        session_id: 會話識別符

    Returns:
        Session 資料，若 session 不存在則回傳 404
    """
    data = await session_manager.get_session_id_data(session_id)
    if not data:
        return JSONResponse(
            {'error': f"Session '{session_id}' 不存在"},
            status_code=404,
        )
    return JSONResponse({'session_id': session_id, 'data': data})


@app.get('/api/sessions/{session_id}/check')
async def check_session(session_id: str, remote_addr: str | None = None) -> JSONResponse:
    """檢查 session 是否有效。"""
    valid = await session_manager.check_session_id(session_id, remote_addr)
    message = '' if valid else session_manager.session_id_error_message()
    return JSONResponse({'valid': valid, 'message': message})


@app.patch('/api/sessions/{session_id}')
async def update_session(session_id: str, body: UpdateSessionRequest) -> JSONResponse:
    """更新 session 的單一屬性。

    Returns:
        更新結果，key 不合法或 session 不存在時回傳 400
    """
    updated = await session_manager.update_session_id(session_id, body.key, body.value)
    if not updated:
        return JSONResponse(
            {'error': f"無法更新 Session '{session_id}' 的屬性 '{body.key}'"},
            status_code=400,
        )
    return JSONResponse({'status': 'ok'})


@app.delete('/api/sessions/{session_id}')
async def delete_session(session_id: str) -> JSONResponse:
    """刪除特定 session。

    Args:
        session_id: 會話識別符

    Returns:
        刪除結果，若 session 不存在則回傳 404
    """
    removed = await session_manager.remove_session_id(session_id)
    if not removed:
        return JSONResponse(
            {'error': f"Session '{session_id}' 不存在"},
            status_code=404,
        )

    logger.info('Session 已透過 API 刪除', extra={'session_id': session_id})
    return JSONResponse({'status': 'ok', 'message': f"Session '{session_id}' 已刪除"})


@app.get('/health')
async def health() -> JSONResponse:
    """健康檢查端點。"""
    return JSONResponse({'status': 'healthy'})
