"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话工厂，为仓储实现提供持久化支持。

Creates the database engine and session factory in SQLAlchemy 2.0 async mode,
backing the repository implementations.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from alertflow.core.config import settings

# 创建异步数据库引擎 (Create Async Database Engine)
engine = create_async_engine(
    settings.database_url,
    echo=False  # 关闭 SQL 日志输出 (Disable SQL logging)
)

# 创建异步会话工厂，提交后不过期对象 (Async session factory, objects not expired on commit)
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """
    ORM 模型基类 (ORM Model Base Class)

    SQLAlchemy 2.0 declarative base class that all persisted rows inherit from.
    """
    pass

