"""
AgentAssist - WebRTC 信令轉送服務
"""

import logging
from typing import Any

from agentassist.services.room_router import RoomRouter

logger = logging.getLogger(__name__)

SIGNAL_KINDS = ("offer", "answer", "ice")


def voice_room(session_id: str) -> str:
    return f"voice-{session_id}"


class SignalingRelay:
    """
    將 offer / answer / ICE candidate 原封不動轉送給同一語音房間的另一位成員。
    不檢查內容、不重試；對方不在房間時直接丟棄，也不通知發送者。
    """

    def __init__(self, router: RoomRouter):
        self.router = router

    async def relay(
        self, kind: str, session_id: str, payload: Any, sender_id: str
    ) -> bool:
        """
        轉送一則信令訊息。

        Returns:
            bool: 至少送達一位成員時為 True；被丟棄時為 False。
        """
        if kind not in SIGNAL_KINDS:
            raise ValueError(f"未知的信令種類: {kind}")

        message = {"session_id": session_id, "payload": payload, "from": sender_id}
        delivered = await self.router.broadcast(
            voice_room(session_id),
            f"signal_{kind}",
            message,
            sender_id=sender_id,
            exclude_sender=True,
        )
        if not delivered:
            logger.debug(
                "信令服務：會話 %s 沒有其他成員，已丟棄來自 %s 的 %s", session_id, sender_id, kind
            )
            return False
        logger.debug("信令服務：已轉送 %s (會話 %s, 來自 %s)", kind, session_id, sender_id)
        return True
