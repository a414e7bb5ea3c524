"""
Configuration for the restdis client.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Client configuration loaded from environment."""

    rest_url: str = Field(default="http://localhost:8080", description="Base URL of the REST API")
    rest_token: str = Field(default="", description="API token sent as Bearer credential")
    timeout: float = Field(default=10.0, description="HTTP timeout in seconds")

    model_config = {"env_prefix": "RESTDIS_"}
