"""
AlertFlow 测试基础配置

提供 SQLite in-memory 异步数据库、手动时钟、协作方接口的内存实现以及引擎组件 fixture。
所有测试不依赖外部 PostgreSQL、SMTP 或 Webhook。
"""
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# 必须在导入 alertflow 之前设置环境变量，避免真实连接
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["POSTGRES_PORT"] = "5432"
os.environ["SMTP_HOST"] = ""
os.environ["CHAT_WEBHOOK_URL"] = ""

from alertflow.core.clock import Clock
from alertflow.core.database import Base
from alertflow.core.deps import build_engine_context
import alertflow.models  # noqa: F401
from alertflow.schemas.escalation import (
    AssignTo,
    AssignmentRules,
    AssignmentType,
    EscalationChain,
    EscalationExecution,
    EscalationLevel,
    ExecutionStatus,
    RoundRobinRule,
    TechnicianProfile,
)
from alertflow.schemas.threshold import AlertMetric, Threshold
from alertflow.services.breach_ledger import BreachLedger
from alertflow.services.chain_runner import EscalationChainRunner
from alertflow.services.interfaces import (
    ConfigurationStore,
    EscalationRepository,
    NotificationDispatcher,
    TicketRepository,
)
from alertflow.services.threshold_engine import ThresholdEngine


# ── SQLite 异步引擎 ──────────────────────────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

UTC = timezone.utc
T0 = datetime(2024, 3, 4, 10, 0, tzinfo=UTC)  # 周一 (Monday)


# ── 手动时钟 ──────────────────────────────────────────────────────────
class ManualClock(Clock):
    """测试用时钟，只在显式推进时前进。"""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# ── 协作方内存实现 ────────────────────────────────────────────────────
class FakeConfigStore(ConfigurationStore):
    def __init__(self):
        self.thresholds: dict[int, Threshold] = {}
        self.chains: dict[int, EscalationChain] = {}
        self.profiles: dict[int, TechnicianProfile] = {}
        self.ticket_counts: dict[int, int] = {}
        self.saved_chains: list[EscalationChain] = []
        self.saved_statistics: list[Threshold] = []

    async def list_active_thresholds(self):
        return [t for t in self.thresholds.values() if t.is_active]

    async def list_chains(self):
        return list(self.chains.values())

    async def list_technician_profiles(self):
        return list(self.profiles.values())

    async def get_technician_profile(self, user_id):
        return self.profiles.get(user_id)

    async def get_current_ticket_count(self, user_id):
        return self.ticket_counts.get(user_id, 0)

    async def save_chain(self, chain):
        self.saved_chains.append(chain.model_copy(deep=True))

    async def save_threshold_statistics(self, threshold):
        self.saved_statistics.append(threshold.model_copy(deep=True))


class FakeEscalationRepository(EscalationRepository):
    def __init__(self):
        self.items: dict[int, EscalationExecution] = {}
        self._next_id = 1

    async def save_execution(self, execution):
        stored = execution.model_copy(deep=True)
        if stored.id is None:
            stored.id = self._next_id
            self._next_id += 1
        self.items[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_execution(self, execution_id):
        item = self.items.get(execution_id)
        return item.model_copy(deep=True) if item else None

    async def list_executions(self, status: Optional[str] = None, limit: int = 100):
        items = [e for e in self.items.values() if status is None or e.status.value == status]
        return [e.model_copy(deep=True) for e in sorted(items, key=lambda e: -e.id)[:limit]]

    async def find_active_execution(self, ticket_id, chain_id):
        for e in sorted(self.items.values(), key=lambda e: -e.id):
            if e.ticket_id == ticket_id and e.chain_id == chain_id and e.status == ExecutionStatus.ACTIVE:
                return e.model_copy(deep=True)
        return None


class FakeTicketRepository(TicketRepository):
    def __init__(self):
        self.created: list[dict] = []
        self.updates: list[tuple[str, dict]] = []
        self.assignments: list[tuple[str, int]] = []
        self.fail_create = False

    async def create_ticket(self, fields):
        if self.fail_create:
            raise RuntimeError("ticket system unavailable")
        self.created.append(fields)
        return str(len(self.created))

    async def update_ticket(self, ticket_id, updates):
        self.updates.append((ticket_id, updates))

    async def assign_ticket(self, ticket_id, user_id):
        self.assignments.append((ticket_id, user_id))


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[dict] = []

    async def notify(self, channel, recipients, subject, body, severity=None):
        self.sent.append({
            "channel": channel, "recipients": recipients, "subject": subject,
            "body": body, "severity": severity,
        })
        return self.succeed


# ── 构造辅助 ──────────────────────────────────────────────────────────
def make_level(order: int, **kwargs) -> EscalationLevel:
    kwargs.setdefault("name", f"L{order}")
    kwargs.setdefault("assignment_type", AssignmentType.SPECIFIC_USER)
    kwargs.setdefault("assign_to", AssignTo(user_id=100 + order))
    return EscalationLevel(order=order, **kwargs)


def make_chain(chain_id: int = 1, levels=None, **kwargs) -> EscalationChain:
    if levels is None:
        levels = [make_level(0), make_level(1), make_level(2)]
    return EscalationChain(id=chain_id, name=f"chain-{chain_id}", levels=levels, **kwargs)


def make_threshold(threshold_id: int = 1, **kwargs) -> Threshold:
    kwargs.setdefault("name", f"threshold-{threshold_id}")
    kwargs.setdefault("operator", "greater_than")
    kwargs.setdefault("value", 90)
    return Threshold(id=threshold_id, **kwargs)


def make_sample(value: float, device_id: str = "dev-1", **kwargs) -> AlertMetric:
    kwargs.setdefault("device_name", "web-01")
    kwargs.setdefault("metric_type", "cpu_usage")
    kwargs.setdefault("timestamp", T0)
    return AlertMetric(device_id=device_id, value=value, **kwargs)


def round_robin_rules(*user_ids: int, skip_offline: bool = False) -> AssignmentRules:
    return AssignmentRules(round_robin=RoundRobinRule(user_pool=list(user_ids), skip_offline_users=skip_offline))


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def ledger() -> BreachLedger:
    return BreachLedger(capacity=100)


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore()


@pytest.fixture
def executions() -> FakeEscalationRepository:
    return FakeEscalationRepository()


@pytest.fixture
def tickets() -> FakeTicketRepository:
    return FakeTicketRepository()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def runner(config_store, executions, tickets, dispatcher, clock) -> EscalationChainRunner:
    return EscalationChainRunner(
        config_store,
        executions,
        tickets=tickets,
        dispatchers={"email": dispatcher, "teams": dispatcher},
        clock=clock,
        arm_timers=False,
    )


@pytest.fixture
def threshold_engine(config_store, ledger, runner, tickets, dispatcher, clock) -> ThresholdEngine:
    return ThresholdEngine(
        config_store,
        ledger,
        runner,
        tickets=tickets,
        dispatchers={"email": dispatcher, "teams": dispatcher},
        clock=clock,
    )


@pytest_asyncio.fixture
async def setup_db():
    """创建所有表，测试后清空。"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(setup_db) -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with TestingSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def client(config_store, executions, tickets, dispatcher, clock) -> AsyncGenerator[AsyncClient, None]:
    """挂载内存协作方的引擎上下文，提供异步 HTTP 测试客户端。"""
    from alertflow.main import app

    ctx = build_engine_context(
        config_store, executions, tickets, {"email": dispatcher, "teams": dispatcher},
        clock=clock, arm_timers=False,
    )
    app.state.engine = ctx

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
