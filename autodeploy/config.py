"""Application configuration loaded from environment variables."""

import socket

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading and sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "autodeploy"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    # Local working copies live at <repositories_dir>/<repository identifier>
    repositories_dir: str = "/var/www"
    # Identity of this host as peers know it; skipped when relaying
    server_name: str = Field(default_factory=socket.gethostname)

    # Peer server -> branches it deploys. ROUTING_TABLE='{"web1": ["main"]}'
    routing_table: dict[str, list[str]] = Field(default_factory=dict)
    routing_table_file: str = ""

    git_bin: str = "git"
    git_remote: str = "origin"
    git_timeout: float = 120.0
    commit_message: str = "Refreshing branch with updated files."
    fallback_author_name: str = "www-data"
    fallback_author_email: str = ""

    relay_scheme: str = "http"
    relay_path: str = "/deploy"
    relay_timeout: float = 10.0

    default_branch: str = "master"
    merge_quirk_marker: str = "bitbucket.org"

    @model_validator(mode="after")
    def _default_author_email(self) -> "Settings":
        if not self.fallback_author_email:
            self.fallback_author_email = f"{self.fallback_author_name}@{self.server_name}"
        return self


settings = Settings()
