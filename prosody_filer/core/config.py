"""Application settings: TOML file, overridden by env (AWS_* credentials, FILER_* for the rest)."""
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, TomlConfigSettingsSource

DEFAULT_CONFIG_FILE = "./config.toml"


class ConfigError(Exception):
    """Configuration file missing, unreadable or invalid. Fatal at startup."""


class Settings(BaseSettings):
    """Gateway config. Frozen: read once at startup, never mutated."""

    # "host:port"; IPv6 hosts in brackets
    listen_address: str = "[::]:5050"
    # Shared with the XMPP server's mod_http_upload_external
    secret: str
    # Path prefix the gateway is mounted at; stripped to get the storage key
    upload_sub_dir: str = "upload/"
    # True: stream objects through the gateway. False: 302 to a presigned URL.
    proxy_mode: bool = False

    # S3-compatible store
    s3_endpoint: str
    s3_access_key: str = Field(
        default="",
        validation_alias=AliasChoices("AWS_ACCESS_KEY_ID", "s3_access_key"),
    )
    s3_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY", "s3_secret_key"),
    )
    s3_tls: bool = True
    s3_region: str = "us-east-1"
    s3_bucket: str
    # Presigned GET TTL (redirect mode)
    presign_ttl_seconds: int = 24 * 60 * 60

    log_level: str = "INFO"
    # One JSON object per line on the request logger
    log_json: bool = False
    # If set, /metrics requires a matching X-Metrics-Secret header
    metrics_secret: str | None = None

    model_config = SettingsConfigDict(env_prefix="FILER_", frozen=True, extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Env first so AWS_* and FILER_* win over values read from the TOML file
        return env_settings, init_settings

    @field_validator("secret", "s3_endpoint", "s3_bucket")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("presign_ttl_seconds")
    @classmethod
    def _positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def s3_endpoint_url(self) -> str:
        scheme = "https" if self.s3_tls else "http"
        return f"{scheme}://{self.s3_endpoint}"

    @property
    def path_prefix(self) -> str:
        """Prefix stripped from request paths, e.g. "/upload/"."""
        return "/" + self.upload_sub_dir

    def bind(self) -> tuple[str, int]:
        """Split listen_address into (host, port)."""
        host, sep, port = self.listen_address.rpartition(":")
        if not sep or not port.isdigit():
            raise ConfigError(f"Invalid listen_address: {self.listen_address!r}")
        host = host.strip("[]") or "0.0.0.0"
        return host, int(port)


def load_settings(config_file: str | Path = DEFAULT_CONFIG_FILE) -> Settings:
    """Read the TOML config file and apply env overrides. Raise ConfigError on any problem."""
    path = Path(config_file)
    if not path.is_file():
        raise ConfigError(f"Configuration file {path} cannot be read")
    try:
        values = TomlConfigSettingsSource(Settings, toml_file=path)()
    except (OSError, ValueError) as e:
        raise ConfigError(f"Config file {path} is invalid: {e}") from e
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Config file {path} is invalid: {e}") from e
