from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    environment: str = "development"
    log_level: str = "INFO"

    # Third-party DNS probe (Pi-hole / AdGuard Home web UI fingerprinting)
    probe_backend: str = "http"          # http | none
    probe_timeout_seconds: float = 1.0
    probe_verify_tls: bool = False       # LAN appliances ship self-signed certs
    probe_max_workers: int = 8

    # Non-standard management port tried before the default ports
    dns_management_port: Optional[int] = None

    class Config:
        env_file = ".env"
        env_prefix = "DNSAUDIT_"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
