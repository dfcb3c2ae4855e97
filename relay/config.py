import socket
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List, Optional


def get_hostname() -> str:
    """Get the system hostname."""
    return socket.gethostname()


class RelaySettings(BaseSettings):
    # Relay identification (used in pushed reports)
    hostname: str = get_hostname()
    version: str = "1.0.0"

    # Listening endpoint
    listen_ip: str = "127.0.0.1"
    listen_port: int = Field(default=8080, ge=0, le=65535)

    # Backend endpoint
    backend_host: str = "127.0.0.1"
    backend_port: int = Field(default=80, ge=1, le=65535)

    # Source addresses allowed to open a session
    allowed_ips: List[str] = ["127.0.0.1", "127.0.0.2"]

    # Network settings
    buffer_size: int = Field(default=8192, gt=0)
    connect_timeout: Optional[float] = 10  # backend dial only
    idle_timeout: Optional[float] = None  # None = sessions never time out

    # Control API
    api_enabled: bool = True
    api_ip: str = "127.0.0.1"
    api_port: int = Field(default=8081, ge=0, le=65535)

    # Stats reporting
    report_url: Optional[str] = None
    report_interval: int = Field(default=60, gt=0)

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "DOOR_RELAY_"
        env_file = ".env"


settings = RelaySettings()
