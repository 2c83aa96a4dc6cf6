"""
AgentAssist - 知識庫儲存服務
負責文件的切割、向量化與保存，並提供檢索時所需的片段列表。
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from agentassist.config.settings import settings
from agentassist.models.knowledge_models import Chunk, Document, DocumentStatus
from agentassist.services.embedding_service import EmbeddingFailure, EmbeddingTask
from agentassist.utils.text_utils import chunk_text

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """
    以文件 ID 為鍵保存文件與其片段。
    所有片段向量的維度一致，由第一個成功建立的片段決定。
    """

    def __init__(
        self,
        embedding_service=None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        db_path: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            embedding_service: 提供 `async embed(text, task)` 的向量服務；None 代表知識功能停用。
            chunk_size: 片段長度，預設讀取 settings.CHUNK_SIZE。
            chunk_overlap: 片段重疊長度，預設讀取 settings.CHUNK_OVERLAP。
            db_path: JSON 快照路徑；None 代表只保存在記憶體中。
        """
        self.embedding_service = embedding_service
        self.chunk_size = chunk_size or settings.CHUNK_SIZE
        self.chunk_overlap = settings.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.db_path = Path(db_path) if db_path else None
        self.documents: Dict[str, Document] = {}
        self._chunks: List[Chunk] = []
        self._load()
        logger.info(
            "知識庫初始化完成 (文件 %d 份，片段 %d 個)", len(self.documents), len(self._chunks)
        )

    @property
    def enabled(self) -> bool:
        return self.embedding_service is not None

    @property
    def dimension(self) -> Optional[int]:
        return len(self._chunks[0].embedding) if self._chunks else None

    # --- 文件 ---

    def add_document(self, document: Document) -> Document:
        self.documents[document.id] = document
        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        return self.documents.get(document_id)

    def list_documents(self) -> List[Document]:
        return list(self.documents.values())

    def chunks(self) -> List[Chunk]:
        """依插入順序回傳所有片段的快照。"""
        return list(self._chunks)

    def remove_document(self, document_id: str) -> Optional[Document]:
        """移除文件與其所有片段。"""
        document = self.documents.pop(document_id, None)
        if document is None:
            return None
        before = len(self._chunks)
        self._chunks = [c for c in self._chunks if c.doc_id != document_id]
        logger.info(
            "已移除文件 %s (%s)，刪除片段 %d 個", document.name, document_id, before - len(self._chunks)
        )
        self._save()
        return document

    # --- 索引 ---

    async def ingest(self, document: Document, raw_text: str) -> Document:
        """
        切割文字並為每個片段建立向量。

        單一片段向量失敗時只略過該片段，其餘片段繼續處理。
        流程完成即標記為 ready，流程本身拋出例外則標記為 error。
        """
        self.add_document(document)
        document.status = DocumentStatus.PROCESSING.value
        try:
            if not self.enabled:
                raise RuntimeError("向量服務未設定，知識功能停用")

            logger.info("開始處理文件: %s", document.name)
            windows = chunk_text(raw_text, self.chunk_size, self.chunk_overlap)
            logger.info("文件 %s 切割為 %d 個片段", document.name, len(windows))

            processed: List[Chunk] = []
            expected_dimension = self.dimension
            for index, window in enumerate(windows):
                try:
                    embedding = await self.embedding_service.embed(
                        window, EmbeddingTask.DOCUMENT
                    )
                except EmbeddingFailure as e:
                    logger.warning("文件 %s 片段 %d 向量建立失敗，略過: %s", document.name, index, e)
                    continue

                if expected_dimension is None:
                    expected_dimension = len(embedding)
                elif len(embedding) != expected_dimension:
                    logger.warning(
                        "文件 %s 片段 %d 向量維度 %d 與知識庫 %d 不符，略過",
                        document.name,
                        index,
                        len(embedding),
                        expected_dimension,
                    )
                    continue

                processed.append(
                    Chunk(
                        doc_id=document.id,
                        doc_name=document.name,
                        chunk_index=index,
                        text=window,
                        embedding=embedding,
                    )
                )

            if document.id not in self.documents:
                logger.info("文件 %s 已在索引期間被移除，捨棄 %d 個片段", document.name, len(processed))
                return document

            self._chunks.extend(processed)
            document.chunk_count = len(processed)
            document.status = DocumentStatus.READY.value
            self._save()
            logger.info(
                "✅ 文件 %s 索引完成 (%d/%d 個片段)", document.name, len(processed), len(windows)
            )
        except Exception as e:
            logger.error("❌ 處理文件 %s 時發生錯誤: %s", document.name, e, exc_info=True)
            document.status = DocumentStatus.ERROR.value
        return document

    # --- 快照 ---

    def _load(self):
        if not self.db_path or not self.db_path.exists():
            return
        try:
            data = json.loads(self.db_path.read_text(encoding="utf-8"))
            for item in data.get("documents", []):
                document = Document.model_validate(item)
                self.documents[document.id] = document
            self._chunks = [Chunk.model_validate(item) for item in data.get("chunks", [])]
        except (OSError, ValueError) as e:
            logger.error("讀取知識庫快照 %s 失敗，改用空白知識庫: %s", self.db_path, e)
            self.documents = {}
            self._chunks = []

    def _save(self):
        if not self.db_path:
            return
        data = {
            "documents": [d.model_dump(mode="json") for d in self.documents.values()],
            "chunks": [c.model_dump(mode="json") for c in self._chunks],
        }
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error("寫入知識庫快照 %s 失敗: %s", self.db_path, e)
