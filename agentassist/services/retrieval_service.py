"""
AgentAssist - 知識檢索服務
將查詢轉為向量，並以餘弦相似度對知識庫片段排序。
"""

import logging
from typing import List, Optional

from agentassist.config.settings import settings
from agentassist.models.knowledge_models import SearchResult
from agentassist.services.embedding_service import EmbeddingFailure, EmbeddingTask
from agentassist.services.knowledge_store import KnowledgeStore
from agentassist.utils.text_utils import cosine_similarity, is_zero_vector

logger = logging.getLogger(__name__)


class RetrievalService:
    """
    知識庫向量檢索。

    任何錯誤 (空知識庫、向量服務失敗、非預期例外) 都回傳空列表，
    呼叫端不需要處理例外。
    """

    def __init__(self, store: KnowledgeStore, threshold: Optional[float] = None):
        self.store = store
        self.threshold = settings.RELEVANCE_THRESHOLD if threshold is None else threshold

    async def search(self, query: str, limit: int = 3) -> List[SearchResult]:
        """
        找出與查詢最相關的片段。

        Args:
            query: 查詢文字。
            limit: 最多回傳的筆數。

        Returns:
            依分數由高到低排序的結果，分數相同時維持片段的插入順序。
        """
        chunks = self.store.chunks()
        if not self.store.enabled or not chunks or not query.strip() or limit <= 0:
            return []

        try:
            query_embedding = await self.store.embedding_service.embed(
                query, EmbeddingTask.QUERY
            )
        except EmbeddingFailure as e:
            logger.warning("查詢向量建立失敗，回傳空結果: %s", e)
            return []
        except Exception as e:
            logger.error("查詢向量建立時發生未知錯誤: %s", e, exc_info=True)
            return []

        try:
            scored = []
            skipped = 0
            for chunk in chunks:
                if not chunk.embedding or is_zero_vector(chunk.embedding):
                    continue
                if len(chunk.embedding) != len(query_embedding):
                    skipped += 1
                    continue
                score = cosine_similarity(query_embedding, chunk.embedding)
                if score > self.threshold:
                    scored.append(
                        SearchResult(text=chunk.text, doc_name=chunk.doc_name, score=score)
                    )
            if skipped:
                logger.warning("有 %d 個片段的向量維度與查詢不符，已略過", skipped)

            # sorted 為穩定排序，同分時保留插入順序
            results = sorted(scored, key=lambda r: r.score, reverse=True)[:limit]
            logger.info("知識檢索完成：%d 個符合門檻，回傳 %d 筆", len(scored), len(results))
            return results
        except Exception as e:
            logger.error("知識檢索發生錯誤: %s", e, exc_info=True)
            return []
