"""
AgentAssist - 會話登錄中心
職責：保存所有文字對話與語音會話的狀態，只提供同步的資料操作，不做任何 I/O。

所有方法皆為同步且不會 await，由單一事件迴圈持有，因此任何事件處理器都不會看到
只完成一半的修改。
"""

import logging
from typing import Dict, List, Optional, Union

from agentassist.models.session_models import (
    Conversation,
    ConversationStatus,
    CustomerInfo,
    Message,
    NotFound,
    TranscriptEntry,
    VoiceSession,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    """管理所有文字對話與語音會話。"""

    def __init__(self):
        """初始化會話登錄中心"""
        # 以 conversation_id 為鍵的文字對話
        self.conversations: Dict[str, Conversation] = {}
        # 以 session_id 為鍵的語音會話
        self.voice_sessions: Dict[str, VoiceSession] = {}

    # --- 文字對話 ---

    def create_or_get_conversation(
        self,
        conversation_id: Optional[str] = None,
        customer_info: Optional[CustomerInfo] = None,
    ) -> Conversation:
        """取得既有對話；不存在時以 waiting 狀態建立一個新的。"""
        if conversation_id and conversation_id in self.conversations:
            return self.conversations[conversation_id]

        conversation = Conversation(customer_info=customer_info or CustomerInfo())
        if conversation_id:
            conversation.id = conversation_id
        self.conversations[conversation.id] = conversation
        logger.info(
            "已建立新的對話 %s (客戶: %s)", conversation.id, conversation.customer_info.name
        )
        return conversation

    def get_conversation(self, conversation_id: str) -> Union[Conversation, NotFound]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return NotFound(kind="conversation", id=conversation_id)
        return conversation

    def append_message(
        self, conversation_id: str, message: Message
    ) -> Union[Message, NotFound]:
        """將訊息附加到對話末端，訊息順序即為呼叫順序。"""
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return NotFound(kind="conversation", id=conversation_id)
        conversation.messages.append(message)
        return message

    def set_conversation_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> Union[Conversation, NotFound]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return NotFound(kind="conversation", id=conversation_id)
        conversation.status = ConversationStatus(status).value
        return conversation

    def clear_messages(
        self, conversation_id: Optional[str] = None
    ) -> Union[List[str], NotFound]:
        """
        清除訊息紀錄。

        Args:
            conversation_id: 指定對話；為 None 時清除所有對話的訊息。

        Returns:
            被清除的對話 ID 列表，或指定對話不存在時的 NotFound。
        """
        if conversation_id is None:
            for conversation in self.conversations.values():
                conversation.messages = []
            logger.info("已清除所有對話的訊息紀錄 (%d 個)", len(self.conversations))
            return list(self.conversations)

        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return NotFound(kind="conversation", id=conversation_id)
        conversation.messages = []
        logger.info("已清除對話 %s 的訊息紀錄", conversation_id)
        return [conversation_id]

    def end_conversation(self, conversation_id: str) -> Union[Conversation, NotFound]:
        """移除對話並回傳其最終狀態 (status=closed)。"""
        conversation = self.conversations.pop(conversation_id, None)
        if conversation is None:
            return NotFound(kind="conversation", id=conversation_id)
        conversation.status = ConversationStatus.CLOSED.value
        logger.info("對話 %s 已結束並移除", conversation_id)
        return conversation

    def list_conversations(self) -> List[Conversation]:
        """回傳所有對話的快照，呼叫端修改不會影響登錄中心。"""
        return [c.model_copy(deep=True) for c in self.conversations.values()]

    # --- 語音會話 ---

    def start_voice_session(
        self, session_id: str, caller_name: Optional[str] = None
    ) -> VoiceSession:
        """
        開始語音會話。重複呼叫會以新的空白會話覆蓋舊狀態。
        """
        if session_id in self.voice_sessions:
            logger.warning("語音會話 %s 已存在，將以新的會話覆蓋", session_id)
        session = VoiceSession(session_id=session_id, caller_name=caller_name or "Caller")
        self.voice_sessions[session_id] = session
        logger.info("語音會話已開始: %s (來電者: %s)", session_id, session.caller_name)
        return session

    def get_voice_session(self, session_id: str) -> Union[VoiceSession, NotFound]:
        session = self.voice_sessions.get(session_id)
        if session is None:
            return NotFound(kind="voice_session", id=session_id)
        return session

    def join_voice_session(
        self, session_id: str
    ) -> Union[List[TranscriptEntry], NotFound]:
        """回傳目前完整的逐字稿序列，供晚加入者一次取得。"""
        session = self.voice_sessions.get(session_id)
        if session is None:
            return NotFound(kind="voice_session", id=session_id)
        logger.info("語音會話 %s 有新成員加入 (%d 筆逐字稿)", session_id, len(session.entries))
        return list(session.entries)

    def append_transcript(
        self, session_id: str, entry: TranscriptEntry
    ) -> Union[TranscriptEntry, NotFound]:
        session = self.voice_sessions.get(session_id)
        if session is None:
            return NotFound(kind="voice_session", id=session_id)
        session.entries.append(entry)
        return entry

    def end_voice_session(self, session_id: str) -> Union[VoiceSession, NotFound]:
        """移除語音會話並回傳其最終狀態，後續通知由呼叫端負責。"""
        session = self.voice_sessions.pop(session_id, None)
        if session is None:
            return NotFound(kind="voice_session", id=session_id)
        logger.info("語音會話已結束: %s", session_id)
        return session
