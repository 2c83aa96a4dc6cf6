"""
LLM 服務模組 - 使用 OpenAI GPT 產生即時教練建議與通話摘要
"""

import logging
from typing import Optional

import httpx
from openai import APIError, AsyncOpenAI

from agentassist.config.settings import settings

logger = logging.getLogger(__name__)


class GenerationFailure(RuntimeError):
    """生成式模型無法使用或呼叫失敗"""


class LLMService:
    """
    對話模型服務：即時教練建議 (JSON 模式) 與摘要。
    呼叫失敗會重試，仍失敗則拋出 GenerationFailure。
    """

    MAX_RETRIES = 2

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        try:
            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OpenAI API Key 未設定")
            self.client = AsyncOpenAI(
                api_key=api_key,
                base_url=settings.OPENAI_BASE_URL or None,
                http_client=http_client,
            )
            self.model = model or settings.LLM_MODEL
            logger.info("對話模型服務就緒 (模型: %s)", self.model)
        except Exception as e:
            logger.error("對話模型服務無法建立: %s", e)
            raise

    async def generate_coaching(self, prompt: str) -> str:
        """要求模型以 JSON 物件回傳教練建議，回傳原始文字。"""
        return await self._call_gpt_api(
            system_prompt="You are a real-time customer support coach. Reply with a single JSON object.",
            prompt=prompt,
            max_tokens=800,
            json_mode=True,
        )

    async def summarize(self, prompt: str) -> str:
        """產生通話或對話摘要。"""
        return await self._call_gpt_api(
            system_prompt="You are a meticulous customer support QA analyst.",
            prompt=prompt,
            max_tokens=1200,
        )

    async def _call_gpt_api(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int,
        json_mode: bool = False,
        retry_count: int = 0,
    ) -> str:
        """呼叫 GPT API (非同步版本)，APIError 時最多重試兩次"""
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
                max_tokens=max_tokens,
                **kwargs,
            )
            content = response.choices[0].message.content or ""
            return content.strip()
        except APIError as e:
            if retry_count < self.MAX_RETRIES:
                logger.warning(
                    "GPT API 呼叫失敗，重試中 (%d/%d): %s",
                    retry_count + 1,
                    self.MAX_RETRIES,
                    e,
                )
                return await self._call_gpt_api(
                    system_prompt, prompt, max_tokens, json_mode, retry_count + 1
                )
            logger.error("❌ 對話模型呼叫失敗，已重試 %d 次: %s", self.MAX_RETRIES, e)
            raise GenerationFailure(f"OpenAI API 錯誤: {e}") from e
