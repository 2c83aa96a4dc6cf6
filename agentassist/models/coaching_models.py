"""
AgentAssist - 即時教練資料模型
定義生成式模型回傳的教練建議，以及解析與產生流程的結果型別。
"""

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from agentassist.models.knowledge_models import SearchResult


class Sentiment(str, Enum):
    """客戶情緒枚舉"""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    FRUSTRATED = "frustrated"


class InsightColor(str, Enum):
    """洞察標籤的嚴重程度顏色"""

    GREEN = "green"
    BLUE = "blue"
    AMBER = "amber"
    ROSE = "rose"


class Insight(BaseModel):
    """單一教練洞察"""

    label: str = Field(..., description="品質標籤，例如 Empathy Gap")
    tip: str = Field("", description="針對最新訊息的具體建議")
    color: InsightColor = Field(InsightColor.BLUE, description="嚴重程度顏色")

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True


class CoachingResult(BaseModel):
    """
    生成式教練模型的結構化輸出。
    模型以 camelCase 鍵值回傳，因此各欄位皆提供別名。
    """

    next_action: str = Field(..., alias="nextAction", description="下一步行動指示")
    smart_replies: List[str] = Field(
        [], alias="smartReplies", description="建議客服直接使用的回覆"
    )
    sentiment: Sentiment = Field(Sentiment.NEUTRAL, description="客戶情緒")
    insights: List[Insight] = Field([], description="教練洞察列表")
    escalation_risk: int = Field(
        0, alias="escalationRisk", ge=0, le=100, description="升級風險 (0-100)"
    )

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True
        populate_by_name = True


class TranscriptLine(BaseModel):
    """送入教練流程的一行逐字稿，相容 role 或 speaker 欄位"""

    role: Optional[str] = None
    speaker: Optional[str] = None
    text: str = ""

    @property
    def label(self) -> str:
        return (self.role or self.speaker or "unknown").upper()


# --- 解析結果 ---


class ParsedCoaching(BaseModel):
    """成功解析出的教練建議"""

    result: CoachingResult


class UnparseableCoaching(BaseModel):
    """無法解析的模型輸出，保留原始文字以便除錯"""

    raw: str
    reason: str


CoachingParseResult = Union[ParsedCoaching, UnparseableCoaching]


class CoachingOutcome(BaseModel):
    """一次教練流程的最終結果；coaching 為 None 時 error 說明原因"""

    coaching: Optional[CoachingResult] = None
    knowledge_context: List[SearchResult] = Field([])
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.coaching is not None
