"""
引擎上下文与 FastAPI 依赖项 (Engine Context and FastAPI Dependencies)

EngineContext 在应用启动时构建一次，持有违规账本、升级链执行器、引擎门面和各协作方，
保存在 app.state 上；路由通过依赖项取得它，不存在模块级的可变引擎实例。

EngineContext is built once at startup and holds the breach ledger, chain
runner, engine façade and collaborators. It lives on app.state; routers
reach it through a dependency, so there is no module-level mutable engine.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request

from alertflow.core.clock import Clock, SystemClock
from alertflow.services.breach_ledger import BreachLedger
from alertflow.services.chain_runner import EscalationChainRunner
from alertflow.services.interfaces import (
    ConfigurationStore,
    EscalationRepository,
    NotificationDispatcher,
    TicketRepository,
)
from alertflow.services.threshold_engine import ThresholdEngine


@dataclass
class EngineContext:
    config_store: ConfigurationStore
    executions: EscalationRepository
    tickets: TicketRepository
    ledger: BreachLedger
    runner: EscalationChainRunner
    engine: ThresholdEngine
    clock: Clock


def build_engine_context(
    config_store: ConfigurationStore,
    executions: EscalationRepository,
    tickets: TicketRepository,
    dispatchers: Dict[str, NotificationDispatcher],
    clock: Optional[Clock] = None,
    arm_timers: bool = True,
) -> EngineContext:
    """组装引擎各组件 (Wire the engine components together)."""
    clock = clock or SystemClock()
    ledger = BreachLedger()
    runner = EscalationChainRunner(
        config_store, executions, tickets=tickets, dispatchers=dispatchers, clock=clock, arm_timers=arm_timers,
    )
    engine = ThresholdEngine(config_store, ledger, runner, tickets=tickets, dispatchers=dispatchers, clock=clock)
    return EngineContext(
        config_store=config_store,
        executions=executions,
        tickets=tickets,
        ledger=ledger,
        runner=runner,
        engine=engine,
        clock=clock,
    )


def get_engine_context(request: Request) -> EngineContext:
    return request.app.state.engine
