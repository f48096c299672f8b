"""
引擎后台任务模块 (Engine Background Tasks)

两个后台循环，在 FastAPI lifespan 中以 asyncio 任务启动：
- 配置刷新：按 config_refresh_seconds 重新加载阈值与升级链缓存
- 超时扫描：按 escalation_sweep_seconds 对等待已到期的升级级别触发超时

Two background loops started as asyncio tasks from the FastAPI lifespan: the
configuration refresh reloads cached thresholds and chains, and the sweep
fires timeouts of escalation levels whose wait has elapsed.
"""
import asyncio
import logging

from alertflow.core.config import settings
from alertflow.core.deps import EngineContext

logger = logging.getLogger(__name__)


async def config_refresh_loop(ctx: EngineContext):
    """配置刷新后台循环。"""
    logger.info("Config refresh loop started (every %ss)", settings.config_refresh_seconds)
    while True:
        await asyncio.sleep(settings.config_refresh_seconds)
        try:
            await ctx.engine.refresh()
        except Exception:
            logger.exception("Error refreshing engine configuration")


async def escalation_sweep_loop(ctx: EngineContext):
    """超时级别扫描后台循环，补偿进程重启或计时器丢失。"""
    logger.info("Escalation sweep loop started (every %ss)", settings.escalation_sweep_seconds)
    while True:
        try:
            await ctx.runner.sweep_overdue()
        except Exception:
            logger.exception("Error in escalation sweep")
        await asyncio.sleep(settings.escalation_sweep_seconds)
