"""
AgentAssist - 向量服務模組 - 使用 OpenAI Embeddings
"""

import logging
from enum import Enum
from typing import List, Optional

import httpx
from openai import APIError, AsyncOpenAI

from agentassist.config.settings import settings

logger = logging.getLogger(__name__)


class EmbeddingFailure(RuntimeError):
    """向量服務呼叫失敗"""


class EmbeddingTask(str, Enum):
    """向量用途：文件索引與查詢使用不同意圖，以取得非對稱的表示"""

    DOCUMENT = "retrieval_document"
    QUERY = "retrieval_query"


class EmbeddingService:
    """OpenAI 向量服務"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """初始化向量服務"""
        try:
            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OpenAI API Key 未設定")
            self.client = AsyncOpenAI(
                api_key=api_key,
                base_url=settings.OPENAI_BASE_URL or None,
                http_client=http_client,
            )
            self.model = model or settings.EMBEDDING_MODEL
            self.prefixes = {
                EmbeddingTask.DOCUMENT: settings.EMBEDDING_DOCUMENT_PREFIX,
                EmbeddingTask.QUERY: settings.EMBEDDING_QUERY_PREFIX,
            }
            logger.info("向量服務 (非同步) 初始化成功，使用模型: %s", self.model)
        except Exception as e:
            logger.error("向量服務初始化失敗: %s", e)
            raise

    async def embed(
        self, text: str, task: EmbeddingTask = EmbeddingTask.DOCUMENT
    ) -> List[float]:
        """
        為單段文字產生向量。

        Raises:
            EmbeddingFailure: 服務呼叫失敗或回傳空向量時。
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=f"{self.prefixes[task]}{text}",
            )
        except APIError as e:
            logger.error("向量服務呼叫失敗 (%s): %s", task.value, e)
            raise EmbeddingFailure(f"OpenAI 向量服務錯誤: {e}") from e

        embedding = list(response.data[0].embedding) if response.data else []
        if not embedding:
            raise EmbeddingFailure("向量服務回傳空向量")
        return embedding
