"""
AgentAssist - 即時事件分派器
職責：將 WebSocket 收到的事件解析為型別化的事件物件，並交給對應的處理函式，
由處理函式協調會話登錄中心、房間路由、信令轉送與教練協調器。
"""

import logging
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from agentassist.config.settings import settings
from agentassist.models.coaching_models import CoachingOutcome, TranscriptLine
from agentassist.models.event_models import (
    EndSessionEvent,
    JoinRoomEvent,
    JoinSessionEvent,
    RegisterEvent,
    SendMessageEvent,
    SignalEvent,
    StartSessionEvent,
    TranscriptEvent,
    TypingEvent,
    parse_inbound_event,
)
from agentassist.models.session_models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    NotFound,
)
from agentassist.services.coaching_orchestrator import CoachingOrchestrator
from agentassist.services.room_router import Connection, RoomRouter
from agentassist.services.session_registry import SessionRegistry
from agentassist.services.signaling_service import SignalingRelay, voice_room

logger = logging.getLogger(__name__)

# 所有客服人員共用的房間，用來接收對話列表更新
AGENTS_ROOM = "agents"


class ClientState:
    """單一連線在事件通道中的身分與所在對話"""

    def __init__(self, client_id: str):
        self.client_id = client_id
        self.role: Optional[str] = None
        self.conversation_id: Optional[str] = None


class EventDispatcher:
    """
    事件分派器。每條連線的事件依到達順序逐一處理；
    長時間的工作 (向量、模型呼叫) 由教練協調器在背景進行。
    """

    def __init__(
        self,
        registry: SessionRegistry,
        router: RoomRouter,
        relay: SignalingRelay,
        orchestrator: CoachingOrchestrator,
        auto_greeting: Optional[bool] = None,
        welcome_message: Optional[str] = None,
    ):
        self.registry = registry
        self.router = router
        self.relay = relay
        self.orchestrator = orchestrator
        self.auto_greeting = settings.AUTO_GREETING if auto_greeting is None else auto_greeting
        self.welcome_message = (
            settings.WELCOME_MESSAGE if welcome_message is None else welcome_message
        )
        self.clients: Dict[str, ClientState] = {}
        self._handlers = {
            RegisterEvent: self._on_register,
            JoinRoomEvent: self._on_join_room,
            SendMessageEvent: self._on_send_message,
            TypingEvent: self._on_typing,
            StartSessionEvent: self._on_start_session,
            JoinSessionEvent: self._on_join_session,
            TranscriptEvent: self._on_transcript,
            EndSessionEvent: self._on_end_session,
            SignalEvent: self._on_signal,
        }

    # --- 連線生命週期 ---

    def connect(self, client_id: str, connection: Connection):
        self.router.connect(client_id, connection)
        self.clients[client_id] = ClientState(client_id)

    def disconnect(self, client_id: str, connection: Optional[Connection] = None):
        rooms = self.router.disconnect(client_id, connection)
        if rooms is None:
            # 同一 ID 已重新連線，保留新連線的狀態
            return
        self.clients.pop(client_id, None)
        logger.info("分派器：客戶端 %s 已離線 (離開房間: %s)", client_id, rooms)

    def _state(self, client_id: str) -> ClientState:
        if client_id not in self.clients:
            self.clients[client_id] = ClientState(client_id)
        return self.clients[client_id]

    # --- 分派 ---

    async def handle_raw(self, client_id: str, raw) -> None:
        """解析原始 JSON 並分派；格式錯誤時只回覆發送者 error 事件。"""
        try:
            event = parse_inbound_event(raw)
        except ValidationError as e:
            logger.warning("分派器：收到來自 %s 的無效事件: %s", client_id, e.errors())
            await self._send_error(client_id, "invalid_event", "事件格式錯誤")
            return
        await self.dispatch(client_id, event)

    async def dispatch(self, client_id: str, event) -> None:
        logger.debug("分派器：處理來自 %s 的 %s 事件", client_id, event.type)
        await self._handlers[type(event)](client_id, event)

    async def _send_error(self, client_id: str, code: str, message: str):
        await self.router.send_to(client_id, "error", {"code": code, "message": message})

    async def _send_not_found(self, client_id: str, result: NotFound):
        await self._send_error(client_id, "not_found", result.message)

    # --- 文字對話 ---

    async def _on_register(self, client_id: str, event: RegisterEvent):
        state = self._state(client_id)
        state.role = event.role

        if event.role == "agent":
            self.router.join(client_id, AGENTS_ROOM)
            await self.router.send_to(
                client_id, "update_conversations", self._conversation_list()
            )
            return

        conversation = self.registry.create_or_get_conversation(
            event.conversation_id, event.customer_info
        )
        state.conversation_id = conversation.id
        self.router.join(client_id, conversation.id)

        await self.router.send_to(
            client_id, "chat_history", self._history_payload(conversation)
        )
        await self.router.send_to(
            client_id, "session_started", {"conversation_id": conversation.id}
        )
        await self.publish_conversations()

        if self.auto_greeting and self.welcome_message and not conversation.messages:
            greeting = Message(
                role=MessageRole.AGENT,
                text=self.welcome_message,
                conversation_id=conversation.id,
            )
            self.registry.append_message(conversation.id, greeting)
            await self.router.broadcast(
                conversation.id, "new_message", greeting.model_dump(mode="json")
            )
            await self.publish_conversations()

    async def _on_join_room(self, client_id: str, event: JoinRoomEvent):
        state = self._state(client_id)
        conversation = self.registry.get_conversation(event.conversation_id)
        if isinstance(conversation, NotFound):
            await self._send_not_found(client_id, conversation)
            return

        self.router.join(client_id, conversation.id)
        state.conversation_id = conversation.id
        if state.role == "agent":
            self.registry.set_conversation_status(conversation.id, ConversationStatus.ACTIVE)

        await self.router.send_to(
            client_id, "chat_history", self._history_payload(conversation)
        )
        await self.publish_conversations()

    async def _on_send_message(self, client_id: str, event: SendMessageEvent):
        state = self._state(client_id)
        conversation_id = event.conversation_id or state.conversation_id
        if not conversation_id:
            await self._send_error(client_id, "not_found", "未指定對話")
            return

        message = Message(
            role=event.role or state.role or MessageRole.CUSTOMER,
            text=event.text,
            conversation_id=conversation_id,
        )
        result = self.registry.append_message(conversation_id, message)
        if isinstance(result, NotFound):
            await self._send_not_found(client_id, result)
            return

        # 發送者本地已有這則訊息，不再送回
        await self.router.broadcast(
            conversation_id,
            "new_message",
            message.model_dump(mode="json"),
            sender_id=client_id,
            exclude_sender=True,
        )
        await self.publish_conversations()
        self._schedule_coaching(conversation_id, self._conversation_lines(conversation_id))

    async def _on_typing(self, client_id: str, event: TypingEvent):
        state = self._state(client_id)
        conversation_id = event.conversation_id or state.conversation_id
        if not conversation_id:
            return
        name = "user_typing" if event.type == "typing" else "user_stop_typing"
        await self.router.broadcast(
            conversation_id,
            name,
            {"role": state.role, "conversation_id": conversation_id},
            sender_id=client_id,
            exclude_sender=True,
        )

    # --- 語音會話 ---

    async def _on_start_session(self, client_id: str, event: StartSessionEvent):
        state = self._state(client_id)
        state.role = state.role or "agent"
        room_id = voice_room(event.session_id)
        # 重新開始會覆蓋舊狀態，舊的教練排程也一併失效
        self.orchestrator.cancel(room_id)
        self.registry.start_voice_session(event.session_id, event.caller_name)
        self.router.join(client_id, room_id)

    async def _on_join_session(self, client_id: str, event: JoinSessionEvent):
        state = self._state(client_id)
        state.role = state.role or "customer"
        entries = self.registry.join_voice_session(event.session_id)
        if isinstance(entries, NotFound):
            await self._send_not_found(client_id, entries)
            return

        self.router.join(client_id, voice_room(event.session_id))
        await self.router.send_to(
            client_id,
            "history",
            {
                "session_id": event.session_id,
                "entries": [e.model_dump(mode="json") for e in entries],
            },
        )

    async def _on_transcript(self, client_id: str, event: TranscriptEvent):
        result = self.registry.append_transcript(event.session_id, event.entry)
        if isinstance(result, NotFound):
            await self._send_not_found(client_id, result)
            return

        room_id = voice_room(event.session_id)
        await self.router.broadcast(
            room_id,
            "new_entry",
            {"session_id": event.session_id, "entry": event.entry.model_dump(mode="json")},
            sender_id=client_id,
            exclude_sender=True,
        )
        self._schedule_coaching(room_id, self._voice_lines(event.session_id))

    async def _on_end_session(self, client_id: str, event: EndSessionEvent):
        result = self.registry.end_voice_session(event.session_id)
        if isinstance(result, NotFound):
            await self._send_not_found(client_id, result)
            return

        room_id = voice_room(event.session_id)
        self.orchestrator.cancel(room_id)
        await self.router.broadcast(room_id, "session_ended", {"session_id": event.session_id})
        self.router.clear_room(room_id)

    async def _on_signal(self, client_id: str, event: SignalEvent):
        await self.relay.relay(event.kind, event.session_id, event.payload, client_id)

    # --- 教練建議 ---

    def _conversation_lines(self, conversation_id: str):
        def getter() -> Optional[List[TranscriptLine]]:
            conversation = self.registry.get_conversation(conversation_id)
            if isinstance(conversation, NotFound):
                return None
            return [TranscriptLine(role=m.role, text=m.text) for m in conversation.messages]

        return getter

    def _voice_lines(self, session_id: str):
        def getter() -> Optional[List[TranscriptLine]]:
            session = self.registry.get_voice_session(session_id)
            if isinstance(session, NotFound):
                return None
            return [TranscriptLine(speaker=e.speaker, text=e.text) for e in session.entries]

        return getter

    def _is_agent(self, client_id: str) -> bool:
        state = self.clients.get(client_id)
        return state is not None and state.role == "agent"

    def _schedule_coaching(self, room_id: str, getter):
        if not self.orchestrator.enabled:
            return
        self.orchestrator.schedule(room_id, getter, self._deliver_coaching)

    async def _deliver_coaching(self, room_id: str, outcome: CoachingOutcome):
        """教練建議只送給房間內的客服人員"""
        delivered = await self.router.broadcast(
            room_id,
            "coaching_update",
            {"room_id": room_id, **outcome.model_dump(mode="json")},
            recipient_filter=self._is_agent,
        )
        logger.info("分派器：房間 %s 的教練建議已送達 %d 位客服", room_id, delivered)

    # --- 供 HTTP API 使用 ---

    def _conversation_list(self) -> List[dict]:
        return [c.model_dump(mode="json") for c in self.registry.list_conversations()]

    @staticmethod
    def _history_payload(conversation: Conversation) -> dict:
        return {
            "conversation_id": conversation.id,
            "messages": [m.model_dump(mode="json") for m in conversation.messages],
        }

    async def publish_conversations(self):
        await self.router.broadcast(AGENTS_ROOM, "update_conversations", self._conversation_list())

    async def clear_history(
        self, conversation_id: Optional[str] = None
    ) -> Union[List[str], NotFound]:
        cleared = self.registry.clear_messages(conversation_id)
        if isinstance(cleared, NotFound):
            return cleared
        for cid in cleared:
            self.orchestrator.cancel(cid)
            await self.router.broadcast(
                cid, "chat_history", {"conversation_id": cid, "messages": []}
            )
        await self.publish_conversations()
        return cleared

    async def end_conversation(
        self, conversation_id: str, summary: Optional[str] = None
    ) -> Union[Conversation, NotFound]:
        conversation = self.registry.end_conversation(conversation_id)
        if isinstance(conversation, NotFound):
            return conversation
        self.orchestrator.cancel(conversation_id)
        await self.router.broadcast(
            conversation_id,
            "conversation_ended",
            {"conversation_id": conversation_id, "summary": summary},
        )
        self.router.clear_room(conversation_id)
        await self.publish_conversations()
        return conversation
