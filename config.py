# config.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

DEFAULT_WAREHOUSE_API_BASE = "http://localhost:3001"
DEFAULT_ASSISTANT_API_BASE = "http://localhost:8000"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the assistant service."""
    warehouse_api_base: str
    warehouse_api_token: str
    warehouse_session_key: str
    assistant_api_base: str
    assistant_timeout: float
    aws_region: str
    aws_access_key_id: str
    aws_secret_access_key: str
    model_id: str
    submit_reset_delay: float
    log_level: str


def load_settings() -> Settings:
    """Build Settings from environment variables.

    Invalid ASSISTANT_TIMEOUT / SUBMIT_RESET_DELAY values raise ValueError.
    """
    return Settings(
        warehouse_api_base=os.getenv("WAREHOUSE_API_BASE", DEFAULT_WAREHOUSE_API_BASE).rstrip("/"),
        warehouse_api_token=os.getenv("WAREHOUSE_API_TOKEN", ""),
        warehouse_session_key=os.getenv("WAREHOUSE_SESSION_KEY", ""),
        assistant_api_base=os.getenv("ASSISTANT_API_BASE", DEFAULT_ASSISTANT_API_BASE).rstrip("/"),
        assistant_timeout=float(os.getenv("ASSISTANT_TIMEOUT", "60")),
        aws_region=os.getenv("AWS_REGION", "us-east-1"),
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", ""),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", ""),
        model_id=os.getenv("ANTHROPIC_MODEL_ID", ""),
        submit_reset_delay=float(os.getenv("SUBMIT_RESET_DELAY", "1.5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
