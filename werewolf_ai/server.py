"""FastAPI 服务器 - 提供游戏API"""
import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .config import load_config
from .errors import ConfigError
from .game_engine import GameEngine
from .llm_provider import LLMProviderBase, MockLLM, OpenAICompatibleLLM
from .models import ActionKind, GameEvent, Phase

logger = logging.getLogger(__name__)

app = FastAPI(title="狼人杀AI对战")

# 存储活跃的WebSocket连接
active_connections: List[WebSocket] = []

# 当前游戏
current_game: Optional[GameEngine] = None
current_task: Optional["asyncio.Task[Any]"] = None


async def broadcast_to_all(message: Dict[str, Any]) -> None:
    """广播消息到所有连接，发送失败的连接会被移除"""
    for connection in list(active_connections):
        try:
            await connection.send_json(message)
        except Exception as e:
            logger.warning("⚠️ 推送失败，断开连接: %s", e)
            if connection in active_connections:
                active_connections.remove(connection)


async def broadcast_event(event: GameEvent) -> None:
    await broadcast_to_all(event.to_dict())


async def _run_game(engine: GameEngine) -> None:
    try:
        await engine.run_game()
    except asyncio.CancelledError:
        logger.info("🛑 游戏已被重置")
        raise
    except Exception:
        logger.exception("❌ 游戏运行出错")
        await broadcast_to_all({"type": "error", "data": {"message": "游戏运行出错"}})


async def reset_game() -> None:
    """取消正在运行的游戏"""
    global current_game, current_task
    task = current_task
    current_game = None
    current_task = None
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def start_game(websocket: WebSocket, data: Dict[str, Any]) -> None:
    """根据请求中的配置创建并启动新游戏"""
    global current_game, current_task
    try:
        config = load_config(data.get("config") or {})
    except ConfigError as e:
        await websocket.send_json({"type": "error", "data": {"message": str(e)}})
        return

    llm: LLMProviderBase
    if config.enabled:
        llm = OpenAICompatibleLLM()
        message = f"✅ 使用模型 {config.model}（{config.masked_key()}）"
    else:
        llm = MockLLM(seed=data.get("seed"))
        message = "⚠️ 未设置API Key，使用模拟模式"
    await websocket.send_json({"type": "info", "data": {"message": message}})

    await reset_game()
    rng = random.Random(data.get("seed"))
    current_game = GameEngine(llm, config, rng=rng, event_sink=broadcast_event)
    current_task = asyncio.create_task(_run_game(current_game))


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket 连接处理"""
    await websocket.accept()
    active_connections.append(websocket)

    try:
        while True:
            data = await websocket.receive_json()
            action = data.get("action")

            if action == "start_game":
                await start_game(websocket, data)
            elif action == "reset_game":
                await reset_game()
                await websocket.send_json({"type": "info", "data": {"message": "🔄 游戏已重置"}})
            else:
                await websocket.send_json({
                    "type": "error",
                    "data": {"message": f"未知的操作: {action}"},
                })

    except WebSocketDisconnect:
        if websocket in active_connections:
            active_connections.remove(websocket)


@app.get("/")
async def root():
    """服务状态"""
    state = current_game.game_state if current_game else None
    return {
        "status": "ok",
        "connections": len(active_connections),
        "running": current_task is not None and not current_task.done(),
        "round": state.current_round if state else None,
        "phase": state.current_phase.value if state else None,
        "winner": state.winner.value if state and state.winner else None,
        "requests": current_game.request_stats() if current_game else None,
    }


@app.get("/requests")
async def ai_requests(
    player_id: Optional[str] = None,
    phase: Optional[Phase] = None,
    action_kind: Optional[ActionKind] = None,
    has_error: Optional[bool] = None,
):
    """当前游戏的模型请求记录（含完整提示词和原始响应）"""
    if current_game is None:
        return {"stats": None, "requests": []}
    logs = current_game.request_history(player_id, phase, action_kind, has_error)
    return {
        "stats": current_game.request_stats(),
        "requests": [log.to_dict() for log in logs],
    }


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("🌐 启动服务器: http://localhost:%d", port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
