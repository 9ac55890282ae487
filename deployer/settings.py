# deployer/settings.py
import logging
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://aipipe.org/openrouter/v1"
    AIMODEL_NAME: str = "openai/gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.7

    GITHUB_TOKEN: str = ""
    GITHUB_OWNER: str = ""
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_BRANCH: str = "main"
    PAGES_DOMAIN: str = "github.io"

    STUDENT_SECRET: str = ""

    # evaluation webhook delivery
    EVAL_DEADLINE_MINUTES: float = 10
    EVAL_REQUEST_TIMEOUT: float = 30

    HTTP_TIMEOUT: float = 30
    LOG_LEVEL: Optional[str] = "INFO"

    # pydantic-settings uses 'model_config' for BaseSettings configuration
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        missing = [
            name
            for name in ("OPENAI_API_KEY", "GITHUB_TOKEN", "GITHUB_OWNER", "STUDENT_SECRET")
            if not getattr(self, name)
        ]
        if missing:
            logger.warning(
                "Missing environment variables: %s. The app may not function correctly without these values.",
                ", ".join(missing),
            )


settings = Settings()
