"""
AgentAssist - 系統配置模組
"""

import logging
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from agentassist.config.prompts import DEFAULT_COACHING_PROMPT, DEFAULT_SUMMARY_PROMPT

load_dotenv()

logger = logging.getLogger(__name__)

# 套件根目錄 (agentassist/)
BASE_DIR = Path(__file__).resolve().parent.parent


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    執行期設定。所有值在匯入時自環境變數讀取一次，未設定者使用預設值。
    """

    # === OpenAI API 設定 ===
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    # 可指向相容 OpenAI 協定的自架服務，留空則使用官方端點
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "")

    # === 模型設定 ===
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o")
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    # 文件與查詢使用不同的意圖前綴，讓向量模型產生非對稱的表示
    EMBEDDING_DOCUMENT_PREFIX: str = os.getenv(
        "EMBEDDING_DOCUMENT_PREFIX", "search_document: "
    )
    EMBEDDING_QUERY_PREFIX: str = os.getenv("EMBEDDING_QUERY_PREFIX", "search_query: ")

    # === 知識庫設定 ===
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1500"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "300"))
    RELEVANCE_THRESHOLD: float = float(os.getenv("RELEVANCE_THRESHOLD", "0.45"))
    KNOWLEDGE_SEARCH_LIMIT: int = int(os.getenv("KNOWLEDGE_SEARCH_LIMIT", "5"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # === 即時教練設定 ===
    COACHING_DEBOUNCE_SECONDS: float = float(
        os.getenv("COACHING_DEBOUNCE_SECONDS", "1.5")
    )
    COACHING_KNOWLEDGE_LIMIT: int = int(os.getenv("COACHING_KNOWLEDGE_LIMIT", "2"))
    COACHING_PROMPT: str = os.getenv("COACHING_PROMPT", DEFAULT_COACHING_PROMPT)
    SUMMARY_PROMPT: str = os.getenv("SUMMARY_PROMPT", DEFAULT_SUMMARY_PROMPT)

    # === 對話設定 ===
    AUTO_GREETING: bool = os.getenv("AUTO_GREETING", "true").lower() == "true"
    WELCOME_MESSAGE: str = os.getenv(
        "WELCOME_MESSAGE",
        "Thank you for contacting Customer Support! May I please get your name to get started?",
    )

    # === 服務設定 ===
    API_PORT: int = int(os.getenv("API_PORT", "5005"))
    CORS_ORIGINS: List[str] = _split_csv(
        os.getenv("CORS_ORIGINS", "http://localhost:3005,http://localhost:5005")
    )
    DEBUG: bool = os.getenv("DEBUG", "true").lower() == "true"

    # === 資料目錄 ===
    BASE_DIR: Path = BASE_DIR
    STORAGE_PATH: Path = (BASE_DIR / os.getenv("STORAGE_PATH", "storage")).resolve()
    UPLOAD_PATH: Path = STORAGE_PATH / "uploads"
    # 留空代表知識庫只存在於記憶體中
    KNOWLEDGE_DB_PATH: str = os.getenv("KNOWLEDGE_DB_PATH", "")

    @classmethod
    def initialize_storage(cls):
        """建立上傳目錄 (連同資料目錄)；失敗時只記錄，上傳時會再嘗試一次。"""
        try:
            cls.UPLOAD_PATH.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("無法建立資料目錄 %s: %s", cls.UPLOAD_PATH, e)

    @classmethod
    def validate(cls) -> None:
        """檢查數值設定是否彼此一致，不一致時拋出 ValueError。"""
        errors = []
        if cls.CHUNK_SIZE <= 0:
            errors.append("CHUNK_SIZE 必須大於 0")
        if not 0 <= cls.CHUNK_OVERLAP < cls.CHUNK_SIZE:
            errors.append("CHUNK_OVERLAP 必須介於 0 與 CHUNK_SIZE 之間")
        if cls.COACHING_DEBOUNCE_SECONDS < 0:
            errors.append("COACHING_DEBOUNCE_SECONDS 不可為負數")

        if errors:
            raise ValueError("; ".join(errors))


settings = Settings()
