"""
AgentAssist - 教練建議解析模組
將生成式模型的文字輸出解析為 CoachingResult。

解析分兩階段：先以嚴格 JSON 解析整段文字，失敗時再找出文字中第一個完整的
{...} 物件。兩者皆失敗時回傳 UnparseableCoaching，不會拋出例外。
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from agentassist.models.coaching_models import (
    CoachingParseResult,
    CoachingResult,
    InsightColor,
    ParsedCoaching,
    Sentiment,
    UnparseableCoaching,
)

logger = logging.getLogger(__name__)

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```$")
_OBJECT_START = re.compile(r"\{")

_decoder = json.JSONDecoder()


def strip_code_fences(text: str) -> str:
    """移除模型偶爾包在 JSON 外層的 markdown 區塊標記"""
    cleaned = _CODE_FENCE_START.sub("", text.strip())
    return _CODE_FENCE_END.sub("", cleaned).strip()


def extract_first_object(text: str) -> Optional[Dict[str, Any]]:
    """從任意文字中找出第一個可解析的完整 JSON 物件"""
    for match in _OBJECT_START.finditer(text):
        try:
            value, _ = _decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """補上預設值並修正超出範圍的欄位"""
    result = dict(data)
    result.setdefault("nextAction", result.pop("next_action", ""))
    result.setdefault("smartReplies", result.pop("smart_replies", []))
    result.setdefault("escalationRisk", result.pop("escalation_risk", 0))
    result.setdefault("insights", [])
    result["nextAction"] = str(result["nextAction"] or "").strip()
    if isinstance(result["smartReplies"], str):
        result["smartReplies"] = [result["smartReplies"]]

    sentiments = {s.value for s in Sentiment}
    sentiment = str(result.get("sentiment", "")).lower()
    result["sentiment"] = sentiment if sentiment in sentiments else Sentiment.NEUTRAL.value

    if isinstance(result["smartReplies"], list):
        result["smartReplies"] = [str(r) for r in result["smartReplies"] if r]

    colors = {c.value for c in InsightColor}
    if isinstance(result["insights"], list):
        insights = []
        for insight in result["insights"]:
            if not isinstance(insight, dict) or not insight.get("label"):
                continue
            color = str(insight.get("color", "")).lower()
            insights.append(
                {
                    "label": str(insight["label"]),
                    "tip": str(insight.get("tip", "")),
                    "color": color if color in colors else InsightColor.BLUE.value,
                }
            )
        result["insights"] = insights

    try:
        risk = int(round(float(result["escalationRisk"])))
    except (TypeError, ValueError):
        risk = 0
    result["escalationRisk"] = max(0, min(100, risk))
    return result


def _to_result(data: Any) -> CoachingResult:
    if not isinstance(data, dict):
        raise ValueError(f"模型輸出不是 JSON 物件: {type(data).__name__}")
    normalized = _normalize(data)
    if not normalized["nextAction"]:
        raise ValueError("模型輸出缺少 nextAction")
    return CoachingResult.model_validate(normalized)


def parse_coaching_output(raw: str) -> CoachingParseResult:
    """
    解析模型輸出。

    Args:
        raw: 模型回傳的原始文字。

    Returns:
        ParsedCoaching 或 UnparseableCoaching。
    """
    cleaned = strip_code_fences(raw or "")
    if not cleaned:
        return UnparseableCoaching(raw=raw or "", reason="模型回傳空白內容")

    try:
        return ParsedCoaching(result=_to_result(json.loads(cleaned)))
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        logger.warning("嚴格 JSON 解析失敗，改用擷取模式: %s", e)

    extracted = extract_first_object(cleaned)
    if extracted is None:
        logger.warning("無法從模型輸出中找到 JSON 物件，原始回應: %s", raw)
        return UnparseableCoaching(raw=raw, reason="找不到 JSON 物件")

    try:
        return ParsedCoaching(result=_to_result(extracted))
    except (ValidationError, ValueError) as e:
        logger.warning("擷取出的 JSON 物件格式不符: %s，原始回應: %s", e, raw)
        return UnparseableCoaching(raw=raw, reason=f"格式不符: {e}")
