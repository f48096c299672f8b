"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理引擎的全部配置项，支持从 .env 文件和环境变量读取。
涵盖数据库连接、配置刷新周期、升级默认值、通知渠道等。

Uses Pydantic Settings to manage all engine configuration, read from .env files
and environment variables. Covers the database connection, configuration refresh
intervals, escalation defaults and notification channels.
"""
import logging
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "alertflow"  # 数据库名称 (Database Name)
    postgres_user: str = "alertflow"  # 数据库用户名 (Database Username)
    postgres_password: str = "alertflow_dev_password"  # 数据库密码 (Database Password)

    # 引擎配置 (Engine Configuration)
    config_refresh_seconds: int = 60  # 阈值/升级链缓存刷新周期 (Threshold/chain cache refresh interval)
    escalation_sweep_seconds: int = 60  # 超时级别扫描周期 (Overdue level sweep interval)
    ledger_capacity: int = 100  # 每个键保留的违规记录数 (Breach records kept per key)
    default_escalation_delay_minutes: int = 5  # 默认升级判定窗口 (Default decision window, minutes)
    default_escalation_threshold: int = 3  # 默认升级所需违规次数 (Default breach count for escalation)
    default_max_tickets_per_user: int = 10  # 最少负载分配的默认上限 (Default least-loaded cap)

    # 邮件通知配置 (Email Notification Configuration)
    smtp_host: str = ""  # SMTP 主机 (SMTP Host)
    smtp_port: int = 465  # SMTP 端口 (SMTP Port)
    smtp_user: str = ""  # SMTP 用户名 (SMTP Username)
    smtp_password: str = ""  # SMTP 密码 (SMTP Password)
    smtp_ssl: bool = True  # 是否使用 SSL (Use SSL)
    smtp_from: Optional[str] = None  # 发件人地址 (Sender Address)

    # 聊天 Webhook 通知配置 (Chat Webhook Notification Configuration)
    chat_webhook_url: Optional[str] = None  # Teams/通用 Incoming Webhook 地址 (Incoming Webhook URL)
    notification_timeout_seconds: float = 10.0  # 通知请求超时 (Notification request timeout)

    environment: str = "development"  # 运行环境 (Runtime Environment)
    frontend_url: str = "http://localhost:3000"  # 前端 URL，用于通知中的链接 (Frontend URL for links)
    log_level: str = "INFO"  # 日志级别 (Log Level)

    @property
    def database_url(self) -> str:
        """
        构造 PostgreSQL 异步连接 URL (Build PostgreSQL Async Connection URL)

        Generates a connection string for the asyncpg driver.
        """
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # 自动加载 .env 文件 (Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()
