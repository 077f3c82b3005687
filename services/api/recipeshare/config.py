"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Entity store (MySQL-protocol compatible) ───────────────────────────
    db_host: str = "mysql"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "recipeshare"
    # Full SQLAlchemy URL; wins over the parts above when set
    database_url: Optional[str] = None

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    db_pool_size: int = 20
    db_max_overflow: int = 10

    # ── Kafka (outbound mail events) ───────────────────────────────────────
    kafka_enabled: bool = True
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_topic_share_emails: str = "share-emails"

    # ── Pagination ─────────────────────────────────────────────────────────
    default_page_size: int = 10
    max_page_size: int = 100
    social_page_size: int = 20           # followers / following / notifications

    # ── Notifications ──────────────────────────────────────────────────────
    notification_retention_days: int = 30
    notification_reap_interval_seconds: int = 3600

    # ── Sharing ────────────────────────────────────────────────────────────
    frontend_url: str = "http://localhost:3000"
    mail_from: str = "Recipe Sharing Platform <noreply@recipeapp.com>"

    # ── Observability ──────────────────────────────────────────────────────
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "recipeshare-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
