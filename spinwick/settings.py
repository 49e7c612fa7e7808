"""
Process settings.

Settings are read from a YAML file (path in ``SPINWICK_CONFIG``). Top-level
fields the file leaves out fall back to ``SPINWICK_*`` environment variables,
with ``__`` separating nested sections (``SPINWICK_TIMEOUTS__INSTALLATION=600``).
The database URL is not part of these settings; see ``spinwick.db``.
"""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from spinwick.services.errors import ConfigurationException

StatusSource = Literal["status", "check_run"]


class RepositoryConfig(BaseModel):
    """How the CI signal of one repository is read."""

    owner: str
    name: str
    status_source: StatusSource = "status"
    status_context: str
    jenkins_server: Optional[str] = None
    job_path: Optional[str] = None
    jenkins_folder: str = "mp"


class JenkinsServer(BaseModel):
    url: str
    username: str
    api_token: str


class SmtpSettings(BaseModel):
    username: str = ""
    password: str = ""
    server: str = ""


class PollSettings(BaseModel):
    """Seconds between two observations of a remote system."""

    build: float = 30
    build_link: float = 10
    image: float = 10
    cluster: float = 30
    installation: float = 10
    creation_settle: float = 3
    reachability: float = 10
    ping: float = 10


class TimeoutSettings(BaseModel):
    """Per-stage deadlines in seconds. Stages never share a budget."""

    build: float = 3600
    build_link: float = 480
    build_start_delay: float = 60
    image: float = 1800
    cluster: float = 900
    installation: float = 480
    reachability: float = 300
    ping: float = 300
    request: float = 30


class MessageSettings(BaseModel):
    setup_failed: str = "Failed to set up the SpinWick. Please check the logs and try again."
    upgrade_notice: str = "New commit detected. SpinWick upgrade will occur after the build is successful."


class Settings(BaseSettings):
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    provisioner_url: str = "http://localhost:8075"
    dns_base_domain: str = "test.mattermost.cloud"
    registry_url: str = "https://registry-1.docker.io"
    image: str = "mattermost/mattermost-enterprise-edition"

    spinwick_label: str = "Setup Cloud Test Server"
    spinwick_ha_label: str = "Setup HA Cloud Test Server"
    installation_size: str = "miniSingleton"
    installation_ha_size: str = "miniHA"
    installation_affinity: str = "multitenant"
    cluster_size: str = "SizeAlef1000"

    repositories: list[RepositoryConfig] = []
    jenkins_servers: dict[str, JenkinsServer] = {}
    smtp: SmtpSettings = SmtpSettings()
    poll: PollSettings = PollSettings()
    timeouts: TimeoutSettings = TimeoutSettings()
    messages: MessageSettings = MessageSettings()

    model_config = SettingsConfigDict(
        env_prefix="SPINWICK_", env_nested_delimiter="__", extra="ignore"
    )

    def get_repository(self, owner: str, name: str) -> RepositoryConfig | None:
        for repository in self.repositories:
            if repository.owner == owner and repository.name == name:
                return repository
        return None

    def size_for_labels(self, labels: list[str]) -> str | None:
        """Installation size requested by the first SpinWick label, if any."""
        for label in labels:
            if label == self.spinwick_label:
                return self.installation_size
            if label == self.spinwick_ha_label:
                return self.installation_ha_size
        return None


def load_settings(path: str | Path | None = None) -> Settings:
    path = path or os.getenv("SPINWICK_CONFIG")
    if not path:
        return Settings()

    try:
        data = yaml.safe_load(Path(path).read_text())
    except OSError as exc:
        raise ConfigurationException(f"Unable to read settings file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationException(f"Invalid YAML in settings file {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationException(f"Settings file {path} must contain a mapping")
    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigurationException(f"Invalid settings in {path}: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    return load_settings()
