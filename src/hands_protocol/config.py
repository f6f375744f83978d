"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

# src/hands_protocol/config.py -> project root
DEFAULT_INSTALL_ROOT = Path(__file__).resolve().parents[2]


@dataclass
class Config:
    queue_dir: Path = field(default_factory=lambda: Path.home() / ".hands_protocol" / "queue")
    templates_dir: Path = field(default_factory=lambda: Path.home() / ".hands_protocol" / "templates")
    install_root: Path = DEFAULT_INSTALL_ROOT
    work_dir: Path = field(default_factory=lambda: Path.cwd())
    exec_timeout: float = 60.0
    poll_interval: float = 2.0
    history_limit: int = 100
    translator_timeout: float = 15.0
    translator_api_key: str | None = None
    translator_model: str = "gemini-1.5-flash"
    translator_url: str = "https://generativelanguage.googleapis.com/v1/models"
    extra_protected_dirs: list[str] = field(default_factory=list)
    slack_bot_token: str | None = None
    slack_channel: str | None = None
    api_token: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if queue_dir := os.environ.get("HP_QUEUE_DIR"):
            config.queue_dir = Path(queue_dir)

        if templates_dir := os.environ.get("HP_TEMPLATES_DIR"):
            config.templates_dir = Path(templates_dir)

        if root := os.environ.get("HP_INSTALL_ROOT"):
            config.install_root = Path(root)

        if work_dir := os.environ.get("HP_WORK_DIR"):
            config.work_dir = Path(work_dir)

        if timeout := os.environ.get("HP_EXEC_TIMEOUT"):
            config.exec_timeout = float(timeout)

        if interval := os.environ.get("HP_POLL_INTERVAL"):
            config.poll_interval = float(interval)

        if limit := os.environ.get("HP_HISTORY_LIMIT"):
            config.history_limit = int(limit)

        if t_timeout := os.environ.get("HP_TRANSLATOR_TIMEOUT"):
            config.translator_timeout = float(t_timeout)

        config.translator_api_key = (
            os.environ.get("FREE_LLM_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        )

        if model := os.environ.get("HP_TRANSLATOR_MODEL"):
            config.translator_model = model

        if url := os.environ.get("HP_TRANSLATOR_URL"):
            config.translator_url = url

        if dirs := os.environ.get("HP_PROTECTED_DIRS"):
            config.extra_protected_dirs = [d for d in dirs.split(os.pathsep) if d]

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("HP_SLACK_CHANNEL")
        config.api_token = os.environ.get("HP_API_TOKEN")

        return config


def get_config() -> Config:
    return Config.from_env()
