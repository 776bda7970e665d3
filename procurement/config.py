# procurement/config.py
"""
Configuration centralisée - variables d'environnement
"""

import os
import logging
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration du moteur de propositions chargée depuis l'environnement ou .env"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # --- Application ---
    APP_NAME: str = "Vendor Procurement Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Base de données ---
    DATABASE_URL: str = ""

    # Defaults pour dev local
    POSTGRES_USER: str = "procurement_user"
    POSTGRES_PASSWORD: str = "procurement_secret"
    POSTGRES_DB: str = "procurement"
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432

    # --- IA (API compatible OpenAI) ---
    AI_API_KEY: str = ""
    AI_MODEL: str = "llama-3.3-70b-versatile"
    AI_BASE_URL: str = "https://api.groq.com/openai/v1"
    AI_MAX_TOKENS: int = 2000
    AI_TEMPERATURE: float = 0.2

    # --- Boîte de réception IMAP ---
    IMAP_HOST: str = ""
    IMAP_PORT: int = 993
    IMAP_USER: str = ""
    IMAP_PASSWORD: str = ""
    IMAP_MAILBOX: str = "INBOX"
    IMAP_POLL_INTERVAL_MS: int = 60000

    # --- Analyse en arrière-plan ---
    ANALYSIS_WORKERS: int = 2
    ANALYSIS_QUEUE_SIZE: int = 100

    # --- Retry ---
    MAX_RETRY_ATTEMPTS: int = 3

    @property
    def imap_configured(self) -> bool:
        """Le poller ne démarre que si les identifiants IMAP sont complets"""
        return bool(self.IMAP_HOST and self.IMAP_USER and self.IMAP_PASSWORD)

    @property
    def database_url(self) -> str:
        """Priorité absolue à l'URL complète (DATABASE_URL)"""
        _logger = logging.getLogger(__name__)

        env_url = os.environ.get("DATABASE_URL")
        if env_url:
            url = env_url
            source = "os.environ DATABASE_URL"
        elif self.DATABASE_URL:
            url = self.DATABASE_URL
            source = "Pydantic DATABASE_URL"
        else:
            url = (
                f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
            source = f"composants individuels (host={self.POSTGRES_HOST})"

        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
            _logger.info("🔧 Correction URL: postgres:// -> postgresql://")

        _logger.debug(f"📊 DB source: {source}")
        return url


@lru_cache()
def get_settings() -> Settings:
    """Singleton des settings - cache en mémoire"""
    return Settings()
