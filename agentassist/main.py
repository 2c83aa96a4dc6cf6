"""
AgentAssist - 服務啟動入口
執行方式：`agent-assist` 或 `python -m agentassist.main`
"""

import logging
import sys

import uvicorn

from agentassist.config.settings import settings

logger = logging.getLogger("agentassist")


def configure_logging():
    """整個程序只設定一次根日誌；DEBUG 模式下輸出除錯訊息"""
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    # openai / httpx 的請求日誌過於詳細
    logging.getLogger("httpx").setLevel(logging.WARNING)


def preflight() -> bool:
    """檢查設定並準備儲存目錄，任何設定錯誤都會阻止服務啟動。"""
    try:
        settings.validate()
    except ValueError as e:
        logger.error("❌ 設定檢查未通過: %s", e)
        return False

    settings.initialize_storage()
    logger.info("✅ 設定檢查通過，資料目錄: %s", settings.STORAGE_PATH)
    if not settings.OPENAI_API_KEY:
        logger.warning("⚠️ 未設定 OPENAI_API_KEY，知識檢索與即時教練功能將停用")
    return True


def startup_banner() -> str:
    port = settings.API_PORT
    lines = [
        "AgentAssist - 客服即時協作與知識輔助教練",
        f"模式: {'DEBUG' if settings.DEBUG else 'PRODUCTION'}",
        f"生成模型: {settings.LLM_MODEL} | 向量模型: {settings.EMBEDDING_MODEL}",
        f"教練防抖: {settings.COACHING_DEBOUNCE_SECONDS}s | 相關度門檻: {settings.RELEVANCE_THRESHOLD}",
        f"事件通道: ws://localhost:{port}/ws/events/{{client_id}}",
        f"HTTP API: http://localhost:{port}/api",
    ]
    return "\n".join(lines)


def main():
    configure_logging()
    if not preflight():
        sys.exit("啟動中止：請修正 .env 或環境變數後再試。")

    for line in startup_banner().splitlines():
        logger.info(line)

    uvicorn.run(
        "agentassist.api.app:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )


if __name__ == "__main__":
    main()
