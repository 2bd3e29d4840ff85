from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent
RULES_DIR = BASE_DIR / "rules"


class Settings(BaseSettings):
    # --- app ---
    app_name: str = "Security Log Monitor"
    debug: bool = False
    log_level: str = "INFO"

    # --- database ---
    db_path: str = str(BASE_DIR / "db" / "monitor.db")

    # --- rules ---
    rules_file: str = str(RULES_DIR / "rules.yaml")  # seeds an empty rule table

    # --- remote scorer ---
    scorer_base_url: str = "https://api.openai.com/v1"
    scorer_api_key: str | None = None  # scorer disabled when unset
    scorer_model: str = "gpt-4o-mini"
    scorer_timeout: float = 10.0  # seconds
    anomaly_confidence_threshold: float = 0.6

    # --- detection ---
    detection_workers: int = 4
    event_queue_size: int = 0  # 0 = unbounded

    # --- fanout ---
    subscriber_send_timeout: float = 5.0

    # --- server ---
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173"]

    model_config = {"env_file": ".env", "env_prefix": "SLM_"}


settings = Settings()
