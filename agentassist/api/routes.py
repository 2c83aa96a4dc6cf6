"""
AgentAssist - HTTP API 端點
定義教練建議、知識檢索、文件管理與對話管理相關的 HTTP 路由
"""

import logging
import time
from pathlib import Path
from typing import List, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Request,
    UploadFile,
)
from pydantic import BaseModel, Field

from agentassist.config.settings import settings
from agentassist.models.coaching_models import TranscriptLine
from agentassist.models.knowledge_models import Document
from agentassist.models.session_models import Conversation, NotFound
from agentassist.services.container import ServiceContainer
from agentassist.services.llm_service import GenerationFailure

logger = logging.getLogger(__name__)

# 建立一個專門用於 HTTP API 的路由器
router = APIRouter(prefix="/api", tags=["AgentAssist"])


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


# --- 請求模型 ---


class CoachingRequest(BaseModel):
    transcript: List[TranscriptLine] = []


class KnowledgeSearchRequest(BaseModel):
    query: str = ""
    limit: int = Field(settings.KNOWLEDGE_SEARCH_LIMIT, ge=1, le=50)


class VoiceSummaryRequest(BaseModel):
    transcript: str = ""


def _format_conversation(conversation: Conversation) -> str:
    return "\n".join(
        f"{m.role.upper()} [{m.timestamp:%H:%M}]: {m.text}" for m in conversation.messages
    )


# --- 即時教練 ---


@router.post("/coaching")
async def generate_coaching(
    payload: CoachingRequest, services: ServiceContainer = Depends(get_services)
):
    """
    依目前的逐字稿立即產生一次教練建議 (不經防抖)。
    解析失敗時 coaching 為 null，並在 error 欄位說明原因。
    """
    if not services.orchestrator.enabled:
        raise HTTPException(status_code=503, detail="生成式模型未設定")
    outcome = await services.orchestrator.generate(payload.transcript)
    return outcome.model_dump(mode="json")


# --- 知識庫 ---


@router.post("/knowledge/search")
async def search_knowledge(
    payload: KnowledgeSearchRequest, services: ServiceContainer = Depends(get_services)
):
    """供客服手動查詢知識庫。"""
    if not payload.query.strip():
        raise HTTPException(status_code=400, detail="查詢內容不能為空")
    results = await services.retrieval_service.search(payload.query, payload.limit)
    return {"results": [r.model_dump() for r in results]}


@router.post("/knowledge/documents", status_code=202)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    services: ServiceContainer = Depends(get_services),
):
    """
    上傳文件並在背景建立索引。回應中的文件狀態為 processing，
    完成後可透過文件列表查詢 ready / error。
    """
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="未上傳任何檔案內容")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="檔案超過大小上限")

    original_name = Path(file.filename or "document.txt").name
    services.upload_path.mkdir(parents=True, exist_ok=True)
    stored_path = services.upload_path / f"{int(time.time() * 1000)}-{original_name}"
    stored_path.write_bytes(data)

    document = Document(
        name=original_name,
        storage_handle=str(stored_path),
        size=len(data),
        mime_type=file.content_type or "text/plain",
    )
    services.knowledge_store.add_document(document)
    logger.info("文件已上傳: %s (%d bytes)", original_name, len(data))

    background_tasks.add_task(
        services.knowledge_store.ingest,
        document,
        data.decode("utf-8", errors="replace"),
    )
    return {"document": document.model_dump(mode="json")}


@router.get("/knowledge/documents")
async def list_documents(services: ServiceContainer = Depends(get_services)):
    return [d.model_dump(mode="json") for d in services.knowledge_store.list_documents()]


@router.delete("/knowledge/documents/{document_id}")
async def delete_document(
    document_id: str, services: ServiceContainer = Depends(get_services)
):
    """刪除文件、其片段以及上傳的原始檔案。"""
    document = services.knowledge_store.remove_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"找不到文件 ID: {document_id}")

    stored_path = Path(document.storage_handle) if document.storage_handle else None
    if stored_path and stored_path.exists():
        try:
            stored_path.unlink()
        except OSError as e:
            logger.error("刪除上傳檔案 %s 失敗: %s", stored_path, e)
    return {"success": True}


# --- 對話管理 ---


@router.get("/conversations")
async def list_conversations(services: ServiceContainer = Depends(get_services)):
    return [c.model_dump(mode="json") for c in services.registry.list_conversations()]


@router.delete("/conversations/messages")
async def clear_chat_history(
    conversation_id: Optional[str] = None,
    services: ServiceContainer = Depends(get_services),
):
    """清除指定對話的訊息；未指定時清除全部對話的訊息。"""
    cleared = await services.dispatcher.clear_history(conversation_id)
    if isinstance(cleared, NotFound):
        raise HTTPException(status_code=404, detail=cleared.message)
    return {"success": True, "cleared": cleared}


@router.post("/conversations/{conversation_id}/summary")
async def summarize_conversation(
    conversation_id: str, services: ServiceContainer = Depends(get_services)
):
    if not services.orchestrator.enabled:
        raise HTTPException(status_code=503, detail="生成式模型未設定")
    conversation = services.registry.get_conversation(conversation_id)
    if isinstance(conversation, NotFound):
        raise HTTPException(status_code=404, detail=conversation.message)
    if not conversation.messages:
        raise HTTPException(status_code=400, detail="沒有可摘要的對話內容")

    try:
        summary = await services.orchestrator.summarize(_format_conversation(conversation))
    except GenerationFailure as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return {"success": True, "summary": summary}


@router.post("/conversations/{conversation_id}/end")
async def end_conversation(
    conversation_id: str, services: ServiceContainer = Depends(get_services)
):
    """結束對話：能產生摘要時附上摘要，並通知房間內所有成員。"""
    conversation = services.registry.get_conversation(conversation_id)
    if isinstance(conversation, NotFound):
        raise HTTPException(status_code=404, detail=conversation.message)

    summary = None
    if services.orchestrator.enabled and conversation.messages:
        try:
            summary = await services.orchestrator.summarize(
                _format_conversation(conversation)
            )
        except GenerationFailure as e:
            logger.error("對話 %s 摘要產生失敗，仍繼續結束對話: %s", conversation_id, e)

    result = await services.dispatcher.end_conversation(conversation_id, summary)
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404, detail=result.message)
    return {"success": True, "summary": summary}


@router.post("/voice/summary")
async def summarize_voice_call(
    payload: VoiceSummaryRequest, services: ServiceContainer = Depends(get_services)
):
    if not services.orchestrator.enabled:
        raise HTTPException(status_code=503, detail="生成式模型未設定")
    if not payload.transcript.strip():
        raise HTTPException(status_code=400, detail="未提供逐字稿")
    try:
        summary = await services.orchestrator.summarize(
            payload.transcript, heading="VOICE CALL TRANSCRIPT"
        )
    except GenerationFailure as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return {"success": True, "summary": summary}
