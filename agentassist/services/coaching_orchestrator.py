"""
AgentAssist - 即時教練協調器
職責：在逐字稿持續變動時進行防抖，待對話停頓後結合知識檢索結果呼叫生成式模型，
並把解析後的教練建議交給呼叫端。
"""

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from agentassist.config.settings import settings
from agentassist.models.coaching_models import (
    CoachingOutcome,
    TranscriptLine,
    UnparseableCoaching,
)
from agentassist.models.knowledge_models import SearchResult
from agentassist.services.coaching_parser import parse_coaching_output
from agentassist.services.llm_service import GenerationFailure

logger = logging.getLogger(__name__)

TranscriptGetter = Callable[[], Optional[List[TranscriptLine]]]
ResultCallback = Callable[[str, CoachingOutcome], Awaitable[None]]


def build_transcript_text(transcript: List[TranscriptLine]) -> str:
    """依到達順序輸出 `ROLE: text` 格式的逐字稿"""
    return "\n".join(f"{line.label}: {line.text}" for line in transcript)


def build_knowledge_block(knowledge: List[SearchResult]) -> str:
    if not knowledge:
        return ""
    body = "\n---\n".join(f"[From {k.doc_name}]: {k.text}" for k in knowledge)
    return f"\n\n--- RELEVANT KNOWLEDGE ---\n{body}\n--- END KNOWLEDGE ---"


class CoachingOrchestrator:
    """
    以 key (conversation_id 或 voice-{session_id}) 為單位的防抖狀態機：
    Idle → Pending(timer) → Idle。

    每次 schedule 都會取消仍在等待中的計時器並重新計時，只有最後一個計時器會執行。
    已送出的模型呼叫不會被取消，但若期間有更新的計時器，其結果會被丟棄。
    """

    def __init__(
        self,
        llm_service=None,
        retrieval_service=None,
        coaching_prompt: Optional[str] = None,
        summary_prompt: Optional[str] = None,
        delay: Optional[float] = None,
        knowledge_limit: Optional[int] = None,
    ):
        self.llm_service = llm_service
        self.retrieval_service = retrieval_service
        self.coaching_prompt = coaching_prompt or settings.COACHING_PROMPT
        self.summary_prompt = summary_prompt or settings.SUMMARY_PROMPT
        self.delay = settings.COACHING_DEBOUNCE_SECONDS if delay is None else delay
        self.knowledge_limit = knowledge_limit or settings.COACHING_KNOWLEDGE_LIMIT
        # 仍在等待中的計時器
        self._timers: Dict[str, asyncio.Task] = {}
        # 已離開等待、正在產生結果的工作
        self._in_flight: Set[asyncio.Task] = set()
        # 每個 key 最新一次排程的代號，用來判斷結果是否已過期；代號全域遞增，不會重複使用
        self._generations: Dict[str, int] = {}
        self._counter = itertools.count(1)

    @property
    def enabled(self) -> bool:
        return self.llm_service is not None

    # --- 防抖排程 ---

    def schedule(
        self, key: str, transcript_getter: TranscriptGetter, on_result: ResultCallback
    ):
        """
        重新計時。計時結束時才讀取逐字稿，因此會使用當下累積的完整內容。

        Args:
            key: 防抖的單位。
            transcript_getter: 回傳目前逐字稿的函式；回傳 None 代表會話已不存在。
            on_result: 取得結果後呼叫的協程函式 (key, outcome)。
        """
        self._cancel_timer(key)
        generation = next(self._counter)
        self._generations[key] = generation
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.create_task(
            self._delayed_run(key, generation, transcript_getter, on_result)
        )

    def cancel(self, key: str):
        """取消等待中的計時器，並讓進行中的結果失效。"""
        self._cancel_timer(key)
        self._generations.pop(key, None)

    def is_pending(self, key: str) -> bool:
        task = self._timers.get(key)
        return task is not None and not task.done()

    async def shutdown(self):
        """取消所有計時器與進行中的工作"""
        tasks = list(self._timers.values()) + list(self._in_flight)
        for task in tasks:
            task.cancel()
        self._timers.clear()
        self._generations.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _cancel_timer(self, key: str):
        task = self._timers.pop(key, None)
        if task and not task.done():
            task.cancel()

    async def _delayed_run(
        self,
        key: str,
        generation: int,
        transcript_getter: TranscriptGetter,
        on_result: ResultCallback,
    ):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return

        task = asyncio.current_task()
        if self._timers.get(key) is task:
            del self._timers[key]
        self._in_flight.add(task)
        try:
            transcript = transcript_getter()
            if not transcript:
                logger.debug("教練協調器：%s 沒有逐字稿，略過", key)
                return

            outcome = await self.generate(transcript)
            if self._generations.get(key) != generation:
                logger.info("教練協調器：%s 的結果已被較新的排程取代，丟棄", key)
                return
            await on_result(key, outcome)
        except Exception as e:
            logger.error("教練協調器：處理 %s 時發生錯誤: %s", key, e, exc_info=True)
        finally:
            self._in_flight.discard(task)

    # --- 產生建議 ---

    def build_prompt(self, transcript_text: str, knowledge: List[SearchResult]) -> str:
        return (
            f"{self.coaching_prompt}{build_knowledge_block(knowledge)}"
            f"\n\n--- LIVE CONVERSATION ---\n{transcript_text}\n--- END ---"
        )

    async def generate(self, transcript: List[TranscriptLine]) -> CoachingOutcome:
        """
        立即產生一次教練建議 (不經防抖)。

        以最後一句話檢索知識 (取前 knowledge_limit 筆)，與逐字稿合併為提示詞後呼叫模型一次。
        任何失敗都以 CoachingOutcome.error 回傳，不會拋出例外。
        """
        if not transcript:
            return CoachingOutcome()
        if not self.enabled:
            return CoachingOutcome(error="生成式模型未設定")

        knowledge: List[SearchResult] = []
        if self.retrieval_service is not None:
            knowledge = await self.retrieval_service.search(
                transcript[-1].text, self.knowledge_limit
            )

        prompt = self.build_prompt(build_transcript_text(transcript), knowledge)
        try:
            raw = await self.llm_service.generate_coaching(prompt)
        except GenerationFailure as e:
            logger.error("❌ 教練建議產生失敗: %s", e)
            return CoachingOutcome(knowledge_context=knowledge, error=str(e))
        except Exception as e:
            logger.error("❌ 教練建議產生時發生未知錯誤: %s", e, exc_info=True)
            return CoachingOutcome(knowledge_context=knowledge, error=f"教練建議產生失敗: {e}")

        parsed = parse_coaching_output(raw)
        if isinstance(parsed, UnparseableCoaching):
            return CoachingOutcome(
                knowledge_context=knowledge,
                error=f"無法解析教練建議 JSON: {parsed.reason}",
            )

        logger.info(
            "教練建議完成 - 情緒: %s，升級風險: %d",
            parsed.result.sentiment,
            parsed.result.escalation_risk,
        )
        return CoachingOutcome(coaching=parsed.result, knowledge_context=knowledge)

    async def summarize(self, transcript_text: str, heading: str = "CONVERSATION") -> str:
        """
        產生摘要。

        Raises:
            GenerationFailure: 模型未設定或呼叫失敗時。
        """
        if not self.enabled:
            raise GenerationFailure("生成式模型未設定")
        prompt = f"{self.summary_prompt}\n\n--- {heading} ---\n{transcript_text}\n--- END ---"
        return await self.llm_service.summarize(prompt)
