import json
from datetime import timedelta
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WG_GATEWAY_", env_file=".env", env_file_encoding="utf-8")

    # Core
    project_name: str = "wireguard-gateway"
    listen_host: str = "0.0.0.0"
    listen_port: int = 8080
    log_level: str = "info"

    # WireGuard
    interface: str = ""
    endpoint: str = ""
    persistent_keepalive_seconds: int = 0
    use_preshared_key: bool = False

    # Response template
    json_template_path: str = ""

    # Only honour X-Forwarded-For when the socket peer is loopback
    trust_proxy_loopback_only: bool = True

    # Security
    basic_auth_username: str = ""
    basic_auth_password: str = ""
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Peer GC
    gc_interval_seconds: int = 60
    never_connected_ttl_seconds: int = 10 * 60
    stale_handshake_ttl_seconds: int = 24 * 60 * 60

    # wgctl settings
    wgctl_token: str = "secret-token-change-me"
    wgctl_socket: str = "/run/wgctl/wgctl.sock"
    wgctl_timeout_seconds: float = 5.0

    @field_validator(
        "interface",
        "endpoint",
        "json_template_path",
        "basic_auth_username",
        "basic_auth_password",
        "jwt_secret",
    )
    @classmethod
    def _required(cls, value: str, info) -> str:
        if not value:
            raise ValueError(f"{info.field_name} is required")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.lower()
        if level not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError(f"unknown log_level {value!r}")
        return level

    @field_validator("gc_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("gc_interval_seconds must be positive")
        return value

    def gc_interval(self) -> timedelta:
        return timedelta(seconds=self.gc_interval_seconds)

    def never_connected_ttl(self) -> timedelta:
        return timedelta(seconds=self.never_connected_ttl_seconds)

    def stale_handshake_ttl(self) -> timedelta:
        return timedelta(seconds=self.stale_handshake_ttl_seconds)


def load_settings(path: str | None = None) -> Settings:
    """Build settings from the environment, or from a JSON file when a path is given.

    Values passed from the file take precedence over the environment; unknown keys
    in the file are rejected.
    """
    if path is None:
        return Settings()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a JSON object")
    return Settings(**data)
