"""Configuration management for the CLI tool."""

from pydantic import BaseModel, Field


class CLIConfig(BaseModel):
    """CLI configuration settings."""

    host: str = Field(default="localhost", description="Bridge server host")
    port: int = Field(default=8080, description="Bridge server port")
    api_prefix: str = Field(default="/api/v1", description="API route prefix")
    timeout: float = Field(
        default=900.0, description="Read timeout in seconds for a streamed run"
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def api_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}"

    @property
    def chat_url(self) -> str:
        return f"{self.api_url}/chat"
