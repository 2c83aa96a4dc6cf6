import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


@router.websocket("/events/{client_id}")
async def events_endpoint(websocket: WebSocket, client_id: str):
    """即時事件通道：文字對話、語音逐字稿與 WebRTC 信令共用此端點。"""
    dispatcher = websocket.app.state.services.dispatcher
    await websocket.accept()
    dispatcher.connect(client_id, websocket)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("收到來自 %s 的非 JSON 訊息，已忽略", client_id)
                await websocket.send_json(
                    {"type": "error", "data": {"code": "invalid_event", "message": "訊息必須為 JSON"}}
                )
                continue
            logger.debug("收到來自 %s 的事件: %s", client_id, message)
            await dispatcher.handle_raw(client_id, message)
    except WebSocketDisconnect:
        logger.info("客戶端 %s 中斷事件通道連線", client_id)
    except Exception as e:
        logger.error("在與客戶端 %s 的事件通訊中發生錯誤: %s", client_id, e, exc_info=True)
    finally:
        dispatcher.disconnect(client_id, websocket)
