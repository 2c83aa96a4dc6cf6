"""
AgentAssist - 知識庫資料模型
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """文件索引狀態枚舉"""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Document(BaseModel):
    """已上傳、供知識檢索使用的文件"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="文件ID")
    name: str = Field(..., description="原始檔名")
    storage_handle: str = Field("", description="文件在儲存系統中的位置")
    size: int = Field(0, description="文件大小（位元組）")
    mime_type: str = Field("text/plain", description="文件 MIME 類型")
    uploaded_at: datetime = Field(default_factory=datetime.now)
    status: DocumentStatus = Field(DocumentStatus.PROCESSING, description="索引狀態")
    chunk_count: int = Field(0, description="成功建立向量的片段數")

    class Config:
        """Pydantic模型配置"""

        use_enum_values = True


class Chunk(BaseModel):
    """文件切割後的片段與其向量"""

    doc_id: str
    doc_name: str
    chunk_index: int
    text: str
    embedding: List[float] = Field(..., description="片段向量，長度由向量模型決定")


class SearchResult(BaseModel):
    """知識檢索的單筆結果"""

    text: str
    doc_name: str
    score: float
