from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field


class LocatorConfig(BaseModel):
    """Settings for discovering the agent CLI binary."""

    binary_name: str = Field(
        default="claude", description="Executable name of the agent CLI"
    )
    extra_paths: list[Path] = Field(
        default_factory=list,
        description="Additional candidate paths probed before the built-in ones",
    )
    version_timeout: timedelta = Field(
        default=timedelta(seconds=10),
        description="Upper bound on `<binary> --version`",
    )


class RegistrationConfig(BaseModel):
    """Settings for `mcp add|remove|list` sub-commands."""

    scope: str = Field(
        default="user", description="Scope passed to `mcp add|remove --scope`"
    )
    command_timeout: timedelta = Field(
        default=timedelta(seconds=30),
        description="Upper bound on a single registration sub-command",
    )


class OrchestratorConfig(BaseModel):
    """Settings for the per-request agent subprocess."""

    # "reject": a second send raises AlreadyInProgress.
    # "supersede": a second send cancels the first one and then starts.
    concurrent_sends: Literal["reject", "supersede"] = Field(
        default="reject",
        description="What happens on send() while another send is in flight",
    )
    read_size: int = Field(
        default=4096,
        gt=0,
        description="Upper bound of bytes per stdout read; reads return as soon as any data is available",
    )
    working_dir: Optional[Path] = Field(
        default=None,
        description="Working directory of the subprocess (defaults to the system temp dir)",
    )
    kill_timeout: timedelta = Field(
        default=timedelta(seconds=5),
        description="How long to wait for the process tree to exit after a kill",
    )
    config_file_prefix: str = Field(
        default="mcp-config-", description="Prefix of the temporary MCP config file"
    )


class StorageConfig(BaseModel):
    """Persistence of user-added tool servers."""

    backend: Literal["local", "redis"] = Field(
        default="local", description="Key/value backend for server entries"
    )
    path: Path = Field(
        default=Path.home() / ".agentbridge" / "storage.json",
        description="JSON file used by the local backend",
    )
    redis_uri: str = Field(
        default="redis://localhost:6379", description="Redis connection URI"
    )
    redis_prefix: str = Field(
        default="agentbridge", description="Key prefix used by the Redis backend"
    )
    servers_key: str = Field(
        default="mcp-servers", description="Key holding the user server list"
    )


class HostConfig(BaseModel):
    """Initial host-capability signal (the embedding app's own MCP server)."""

    http_endpoint: str = Field(
        default="", description="HTTP MCP endpoint exposed by the host app"
    )
    is_running: bool = Field(
        default=False, description="Whether the host MCP server is running"
    )
    registered_tools: int = Field(
        default=0, description="Number of tools the host MCP server exposes"
    )


class APIConfig(BaseModel):
    """API configuration settings."""

    host: str = Field(default="127.0.0.1", description="API server host")
    port: int = Field(default=8080, description="API server port")
    request_timeout: timedelta = Field(
        default=timedelta(minutes=15),
        description="Wall-clock limit for one streamed chat response",
    )
    send_traceback: bool = Field(
        default=False, description="Include tracebacks in streamed error events"
    )


class LoggingConfig(BaseModel):
    """Root logger settings."""

    level: str = Field(default="INFO", description="Root log level")
    json_output: bool = Field(
        default=True, description="Emit JSON lines instead of coloured text"
    )


class TracingConfig(BaseModel):
    """OpenTelemetry tracing settings."""

    enabled: bool = Field(default=False, description="Enable OTLP tracing")
    service_name: str = Field(default="agentbridge", description="OTEL service name")
    endpoint: str = Field(default="", description="OTLP HTTP traces endpoint")
    username: str = Field(default="", description="Basic-auth user for the collector")
    password: str = Field(default="", description="Basic-auth password")
    sample_rate: float = Field(default=1.0, description="Root sampling ratio")
    excluded_urls: list[str] = Field(
        default_factory=lambda: ["/health", "/metrics"],
        description="URLs excluded from HTTP instrumentation",
    )
