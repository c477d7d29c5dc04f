from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Invoice Chat Assistant"
    debug: bool = False

    # Paths
    db_path: Path = Path(__file__).resolve().parent.parent.parent / "invoice_chat.db"

    # LLM
    llm_provider: str = "gemini"  # gemini | none
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    interpreter_timeout: float = 10.0

    # Record storage
    storage_timeout: float = 3.0
    storage_retry_backoff: float = 0.25

    # Conversations
    proposal_ttl_minutes: int = 10
    history_window: int = 20
    title_max_length: int = 60
    max_message_length: int = 4000
    rate_limit_per_minute: int = 20

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent.parent / ".env"),
        "env_prefix": "INVOICE_CHAT_",
    }


settings = Settings()
