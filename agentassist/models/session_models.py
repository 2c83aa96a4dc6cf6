"""
AgentAssist - 對話與語音會話資料模型
職責：定義文字對話、語音會話與其逐字稿相關的資料結構。
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

# --- Enums for Status and Roles ---


class MessageRole(str, Enum):
    """對話訊息角色枚舉"""

    AGENT = "agent"
    CUSTOMER = "customer"
    SYSTEM = "system"


class Speaker(str, Enum):
    """語音逐字稿說話者枚舉"""

    AGENT = "agent"
    CUSTOMER = "customer"


class ConversationStatus(str, Enum):
    """文字對話狀態枚舉"""

    WAITING = "waiting"
    ACTIVE = "active"
    CLOSED = "closed"


# --- Core Data Models ---


class CustomerInfo(BaseModel):
    """客戶基本資料"""

    name: str = Field("Anonymous", description="客戶顯示名稱")


class Message(BaseModel):
    """對話中的單則訊息，附加後即不可變更"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="訊息ID")
    role: MessageRole = Field(..., description="發送者角色")
    text: str = Field(..., description="訊息內容")
    timestamp: datetime = Field(default_factory=datetime.now, description="發送時間")
    conversation_id: str = Field(..., description="所屬對話ID")

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True
        frozen = True


class Conversation(BaseModel):
    """代表一段客戶與客服之間的文字對話"""

    id: str = Field(
        default_factory=lambda: f"conv-{uuid.uuid4().hex[:12]}", description="對話ID"
    )
    messages: List[Message] = Field([], description="依到達順序排列的訊息")
    customer_info: CustomerInfo = Field(default_factory=CustomerInfo)
    status: ConversationStatus = Field(ConversationStatus.WAITING, description="對話狀態")
    start_time: datetime = Field(default_factory=datetime.now, description="建立時間")

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True


class TranscriptEntry(BaseModel):
    """語音通話中的一句逐字稿"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="逐字稿ID")
    speaker: Speaker = Field(..., description="說話者")
    text: str = Field(..., description="逐字稿內容")
    time: str = Field(
        default_factory=lambda: datetime.now().strftime("%H:%M"),
        description="前端顯示用的時間字串",
    )

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True


class VoiceSession(BaseModel):
    """代表一通進行中的語音通話"""

    session_id: str = Field(..., description="語音會話ID")
    caller_name: str = Field("Caller", description="來電者名稱")
    entries: List[TranscriptEntry] = Field([], description="依到達順序排列的逐字稿")
    started_at: datetime = Field(default_factory=datetime.now)


class NotFound(BaseModel):
    """查詢不存在的對話或會話時回傳的結果 (不以例外拋出)"""

    kind: str = Field(..., description="查詢的實體種類，例如 conversation")
    id: str = Field(..., description="查詢的ID")

    @property
    def message(self) -> str:
        return f"找不到 {self.kind}: {self.id}"
