"""
订单簿中继 API

- GET  /api/depth         当前 Top-K 深度
- POST /api/market-order  市价单模拟（只读，不修改订单簿）
- WS   /ws/orderbook      初始全量 + 增量推送
- GET  /health            健康检查
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, WebSocket
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketState

from orderbook_relay.exceptions import SubscriberLimitExceeded

logger = logging.getLogger(__name__)

# WebSocket 关闭码：服务过载，稍后重试
WS_CLOSE_TRY_AGAIN_LATER = 1013
WS_CLOSE_INTERNAL_ERROR = 1011

# 全局依赖实例
_service = None


def initialize_dependencies(service):
    """初始化全局依赖实例"""
    global _service
    _service = service
    logger.info("Dependencies initialized successfully")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if _service is not None:
        await _service.start()
    yield
    if _service is not None:
        await _service.stop()


# FastAPI 应用
app = FastAPI(
    title="Order Book Relay API",
    description="Live order book depth, delta stream and market order simulation",
    version="1.0.0",
    lifespan=lifespan,
)


# Pydantic 模型
class MarketOrderBody(BaseModel):
    side: Literal["buy", "sell"]
    amount: Decimal = Field(gt=0, allow_inf_nan=False)


class MarketOrderResponse(BaseModel):
    filled: float
    avg_price: Optional[float] = None
    slippage_pct: Optional[float] = None
    status: Literal["filled", "partial", "unavailable"]
    best_price: Optional[float] = None
    levels_consumed: int = 0
    sequence: Optional[int] = None


class DepthResponse(BaseModel):
    symbol: str
    sequence: int
    timestamp: float
    bids: List[List[float]]
    asks: List[List[float]]


class WebSocketSubscriber:
    """把 FastAPI WebSocket 适配为 Broadcaster 订阅者"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_json(message)

    async def close(self) -> None:
        """被广播器移除时关闭连接，客户端据此重连并获取新的初始视图"""
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        await self.websocket.close(code=WS_CLOSE_INTERNAL_ERROR)


# 依赖提供者
async def get_service():
    """获取服务实例"""
    if _service is None:
        raise HTTPException(status_code=500, detail="Order book service not initialized")
    return _service


# API 端点
@app.get("/")
async def root():
    return {"service": "orderbook-relay", "status": "running"}


@app.get("/health")
async def health_check(service=Depends(get_service)):
    """健康检查：starting / ok / degraded / stale"""
    return service.health()


@app.get("/api/depth", response_model=DepthResponse)
async def get_depth(service=Depends(get_service)):
    depth = service.depth()
    if depth is None:
        raise HTTPException(status_code=503, detail="Order book not available yet")
    return depth


@app.post("/api/market-order", response_model=MarketOrderResponse)
async def simulate_market_order(request: MarketOrderBody, service=Depends(get_service)):
    """
    市价单模拟

    请求体在进入这里之前已由 Pydantic 校验，非法输入直接返回 422，不会读取订单簿。
    """
    try:
        result = service.simulate(request.side, request.amount)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(
        f"Market order simulated: side={request.side} amount={request.amount} "
        f"filled={result.filled} status={result.status.value}"
    )
    return result.to_dict()


@app.websocket("/ws/orderbook")
async def orderbook_stream(websocket: WebSocket):
    """先发送当前 Top-K 全量视图，再持续推送增量（qty=0 表示删除该价位）"""
    service = _service
    if service is None:
        await websocket.close(code=WS_CLOSE_INTERNAL_ERROR)
        return

    # 在准入阶段拒绝，避免先接受再断开
    if not service.broadcaster.has_capacity():
        logger.warning("WebSocket 连接被拒绝: 订阅者已满")
        await websocket.close(code=WS_CLOSE_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)
    try:
        await service.subscribe(subscriber)
    except SubscriberLimitExceeded:
        await websocket.close(code=WS_CLOSE_TRY_AGAIN_LATER)
        return

    try:
        # 客户端消息（文本或二进制）不做处理，只用来感知断开
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("WebSocket 客户端断开")
                break
    finally:
        await service.unsubscribe(subscriber)


# 服务器启动函数
def start_server(host: str = "0.0.0.0", port: int = 8000):
    """启动 API 服务器"""
    import uvicorn
    logger.info(f"Starting Order Book Relay API server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)
