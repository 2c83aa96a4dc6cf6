"""
AgentAssist - 服務容器
建立並持有所有服務的單一實例，注入給 API 層使用；測試可各自建立獨立的容器。
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from agentassist.config.settings import settings
from agentassist.services.coaching_orchestrator import CoachingOrchestrator
from agentassist.services.embedding_service import EmbeddingService
from agentassist.services.event_dispatcher import EventDispatcher
from agentassist.services.knowledge_store import KnowledgeStore
from agentassist.services.llm_service import LLMService
from agentassist.services.retrieval_service import RetrievalService
from agentassist.services.room_router import RoomRouter
from agentassist.services.session_registry import SessionRegistry
from agentassist.services.signaling_service import SignalingRelay

logger = logging.getLogger(__name__)


class ServiceContainer:
    """所有服務的集合"""

    def __init__(
        self,
        embedding_service=None,
        llm_service=None,
        knowledge_store: Optional[KnowledgeStore] = None,
        coaching_delay: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        upload_path: Optional[Path] = None,
    ):
        self.http_client = http_client
        self.upload_path = Path(upload_path) if upload_path else settings.UPLOAD_PATH
        self.registry = SessionRegistry()
        self.router = RoomRouter()
        self.relay = SignalingRelay(self.router)
        self.knowledge_store = knowledge_store or KnowledgeStore(embedding_service)
        self.retrieval_service = RetrievalService(self.knowledge_store)
        self.orchestrator = CoachingOrchestrator(
            llm_service=llm_service,
            retrieval_service=self.retrieval_service,
            delay=coaching_delay,
        )
        self.dispatcher = EventDispatcher(
            self.registry, self.router, self.relay, self.orchestrator
        )

    async def aclose(self):
        """停止所有背景工作並關閉共用的 HTTP 客戶端"""
        await self.orchestrator.shutdown()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_services() -> ServiceContainer:
    """
    依 settings 建立正式環境的服務容器。
    未設定 OpenAI API Key 時，知識檢索與教練功能會停用，其餘即時功能照常運作。
    """
    # 建立一個共用的 httpx 客戶端，提升效能
    http_client = httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS)
    embedding_service = None
    llm_service = None
    try:
        embedding_service = EmbeddingService(http_client=http_client)
        llm_service = LLMService(http_client=http_client)
    except ValueError as e:
        logger.warning("⚠️ 生成式功能停用: %s", e)

    knowledge_store = KnowledgeStore(
        embedding_service, db_path=settings.KNOWLEDGE_DB_PATH or None
    )
    return ServiceContainer(
        embedding_service=embedding_service,
        llm_service=llm_service,
        knowledge_store=knowledge_store,
        http_client=http_client,
    )
