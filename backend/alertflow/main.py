"""
AlertFlow 应用入口模块 (AlertFlow Application Entry Module)

负责 FastAPI 应用的生命周期：建表、构建引擎上下文、加载配置、恢复进行中的升级执行、
启动后台循环，以及关闭时取消任务和计时器。

Application entry point. Owns the FastAPI lifecycle: table creation, engine
context construction, configuration load, resumption of active escalation
executions, background loop startup, and cancellation of tasks and timers on
shutdown.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from alertflow import __version__
from alertflow.core.config import settings
from alertflow.core.database import Base, engine
from alertflow.core.deps import build_engine_context
from alertflow.core.exceptions import register_exception_handlers
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure table registration)
from alertflow.models import (  # noqa: F401
    AlertThreshold, EscalationChainRecord, EscalationExecutionRecord, TechnicianProfileRecord, Ticket,
)
from alertflow.routers import escalations, thresholds
from alertflow.services.notifier import build_dispatchers
from alertflow.services.repositories import (
    SqlConfigurationStore,
    SqlEscalationRepository,
    SqlTicketRepository,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动：建表 → 构建 EngineContext → 加载阈值与升级链 → 恢复 active 执行 → 启动后台循环。
    关闭：取消后台循环和升级计时器，释放连接池。
    """
    from alertflow.tasks.engine_scheduler import config_refresh_loop, escalation_sweep_loop

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    ctx = build_engine_context(
        SqlConfigurationStore(),
        SqlEscalationRepository(),
        SqlTicketRepository(),
        build_dispatchers(),
    )
    app.state.engine = ctx

    try:
        await ctx.engine.refresh()
        await ctx.runner.resume()
    except Exception:
        logger.exception("Failed to initialise engine state; continuing with empty configuration")

    refresh_task = asyncio.create_task(config_refresh_loop(ctx))
    sweep_task = asyncio.create_task(escalation_sweep_loop(ctx))
    logger.info("AlertFlow %s started (%s)", __version__, settings.environment)

    yield

    refresh_task.cancel()
    sweep_task.cancel()
    await ctx.runner.shutdown()
    await engine.dispose()


app = FastAPI(
    title="AlertFlow",
    description="Threshold evaluation and escalation-chain engine | 阈值评估与升级链引擎",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

app.include_router(thresholds.router)  # 阈值检查 (Threshold checks)
app.include_router(escalations.router)  # 升级执行 (Escalation executions)


@app.get("/health")
@app.get("/api/v1/health")
async def health():
    """健康检查接口 (Health Check Endpoint)"""
    checks = {"api": "ok"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"
    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, "checks": checks}
