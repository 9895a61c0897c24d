"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    data_dir: Path = field(default_factory=lambda: Path.home() / ".build_relay")
    storage: str = "json"
    jenkins_url: str = "http://localhost:8080"
    jenkins_user: str = ""
    jenkins_token: str = ""
    jenkins_job: str | None = None
    jenkins_timeout: float = 10.0
    github_webhook_secret: str = ""

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if data_dir := os.environ.get("BR_DATA_DIR"):
            config.data_dir = Path(data_dir)

        if storage := os.environ.get("BR_STORAGE"):
            config.storage = storage.lower()

        if url := os.environ.get("JENKINS_URL"):
            config.jenkins_url = url.rstrip("/")

        config.jenkins_user = os.environ.get("JENKINS_USER", "")
        config.jenkins_token = os.environ.get("JENKINS_TOKEN", "")
        config.jenkins_job = os.environ.get("JENKINS_JOB") or None

        if timeout := os.environ.get("JENKINS_TIMEOUT"):
            config.jenkins_timeout = float(timeout)

        config.github_webhook_secret = os.environ.get("GITHUB_WEBHOOK_SECRET", "")

        return config


def get_config() -> Config:
    return Config.from_env()
