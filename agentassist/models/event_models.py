"""
AgentAssist - 即時事件通道的訊息型別
所有從 WebSocket 進來的 JSON 訊息，都會依 type 欄位解析為下列其中一種事件。
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from agentassist.models.session_models import CustomerInfo, TranscriptEntry


class RegisterEvent(BaseModel):
    type: Literal["register"]
    role: Literal["agent", "customer"]
    conversation_id: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None


class JoinRoomEvent(BaseModel):
    type: Literal["join_room"]
    conversation_id: str


class SendMessageEvent(BaseModel):
    type: Literal["send_message"]
    conversation_id: Optional[str] = None
    text: str = Field(..., min_length=1)
    role: Optional[Literal["agent", "customer", "system"]] = None


class TypingEvent(BaseModel):
    type: Literal["typing", "stop_typing"]
    conversation_id: Optional[str] = None


class StartSessionEvent(BaseModel):
    type: Literal["start_session"]
    session_id: str
    caller_name: str = "Caller"


class JoinSessionEvent(BaseModel):
    type: Literal["join_session"]
    session_id: str


class TranscriptEvent(BaseModel):
    type: Literal["transcript"]
    session_id: str
    entry: TranscriptEntry


class EndSessionEvent(BaseModel):
    type: Literal["end_session"]
    session_id: str


class SignalEvent(BaseModel):
    """WebRTC 協商訊息，payload 內容不做任何檢查"""

    type: Literal["signal_offer", "signal_answer", "signal_ice"]
    session_id: str
    payload: Any = None

    @property
    def kind(self) -> str:
        return self.type[len("signal_"):]


InboundEvent = Annotated[
    Union[
        RegisterEvent,
        JoinRoomEvent,
        SendMessageEvent,
        TypingEvent,
        StartSessionEvent,
        JoinSessionEvent,
        TranscriptEvent,
        EndSessionEvent,
        SignalEvent,
    ],
    Field(discriminator="type"),
]

inbound_event_adapter = TypeAdapter(InboundEvent)


def parse_inbound_event(raw: dict):
    """將原始 JSON 轉為事件物件，格式錯誤時拋出 pydantic.ValidationError"""
    return inbound_event_adapter.validate_python(raw)
