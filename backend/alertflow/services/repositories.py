"""
SQLAlchemy 仓库实现 (SQLAlchemy Repository Implementations)

用异步 SQLAlchemy 会话实现引擎的协作方接口：配置存储、升级执行仓库和工单仓库。
每次调用使用独立会话，ORM 行与 Pydantic 领域模型在此边界互相转换。

Implements the engine's collaborator interfaces on async SQLAlchemy sessions:
configuration store, escalation execution repository and ticket repository.
Each call uses its own session; ORM rows and Pydantic domain models are
converted at this boundary.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alertflow.core.database import async_session
from alertflow.core.exceptions import NotFoundError
from alertflow.models.escalation import EscalationChainRecord, EscalationExecutionRecord
from alertflow.models.technician import TechnicianProfileRecord
from alertflow.models.threshold import AlertThreshold
from alertflow.models.ticket import OPEN_TICKET_STATUSES, Ticket
from alertflow.schemas.escalation import EscalationChain, EscalationExecution, ExecutionStatus, TechnicianProfile
from alertflow.schemas.threshold import Threshold
from alertflow.services.interfaces import ConfigurationStore, EscalationRepository, TicketRepository

logger = logging.getLogger(__name__)

TICKET_COLUMNS = {
    "ticket_number", "title", "description", "priority", "status", "source",
    "device_id", "device_name", "client_name", "assigned_to_id",
}


class SqlConfigurationStore(ConfigurationStore):
    """阈值、升级链与技术人员档案的数据库读写 (Database-backed configuration store)"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session) -> None:
        self.session_factory = session_factory

    async def list_active_thresholds(self) -> List[Threshold]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(AlertThreshold).where(AlertThreshold.is_active == True).order_by(AlertThreshold.id)  # noqa: E712
            )
            rows = result.scalars().all()
        thresholds = []
        for row in rows:
            try:
                thresholds.append(Threshold.model_validate(row))
            except ValueError as e:
                logger.error("Skipping malformed threshold %s (%s): %s", row.id, row.name, e)
        return thresholds

    async def list_chains(self) -> List[EscalationChain]:
        async with self.session_factory() as db:
            result = await db.execute(select(EscalationChainRecord).order_by(EscalationChainRecord.id))
            rows = result.scalars().all()
        chains = []
        for row in rows:
            try:
                chains.append(EscalationChain.model_validate(row))
            except ValueError as e:
                logger.error("Skipping malformed escalation chain %s (%s): %s", row.id, row.name, e)
        return chains

    async def list_technician_profiles(self) -> List[TechnicianProfile]:
        async with self.session_factory() as db:
            result = await db.execute(select(TechnicianProfileRecord).order_by(TechnicianProfileRecord.user_id))
            return [TechnicianProfile.model_validate(row) for row in result.scalars().all()]

    async def get_technician_profile(self, user_id: int) -> Optional[TechnicianProfile]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(TechnicianProfileRecord).where(TechnicianProfileRecord.user_id == user_id)
            )
            row = result.scalar_one_or_none()
        return TechnicianProfile.model_validate(row) if row else None

    async def get_current_ticket_count(self, user_id: int) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.count(Ticket.id)).where(
                    Ticket.assigned_to_id == user_id,
                    Ticket.status.in_(OPEN_TICKET_STATUSES),
                )
            )
            return result.scalar() or 0

    async def save_chain(self, chain: EscalationChain) -> None:
        async with self.session_factory() as db:
            row = await db.get(EscalationChainRecord, chain.id)
            if row is None:
                raise NotFoundError(f"Escalation chain {chain.id} not found")
            row.assignment_rules = chain.assignment_rules.model_dump(mode="json")
            row.total_escalations = chain.total_escalations
            row.successful_escalations = chain.successful_escalations
            row.last_escalated_at = chain.last_escalated_at
            row.escalation_history = [h.model_dump(mode="json") for h in chain.escalation_history]
            await db.commit()

    async def save_threshold_statistics(self, threshold: Threshold) -> None:
        async with self.session_factory() as db:
            row = await db.get(AlertThreshold, threshold.id)
            if row is None:
                raise NotFoundError(f"Threshold {threshold.id} not found")
            row.statistics = threshold.statistics.model_dump(mode="json")
            row.breach_count = threshold.breach_count
            row.last_breach_at = threshold.last_breach_at
            row.last_checked_at = threshold.last_checked_at
            await db.commit()


def execution_from_row(row: EscalationExecutionRecord) -> EscalationExecution:
    # 列属性 meta 对应领域模型的 metadata 字段
    return EscalationExecution.model_validate({
        "id": row.id,
        "chain_id": row.chain_id,
        "ticket_id": row.ticket_id,
        "alert_id": row.alert_id,
        "current_level": row.current_level,
        "level_history": row.level_history or [],
        "status": row.status,
        "metadata": row.meta or {},
        "started_at": row.started_at,
        "completed_at": row.completed_at,
        "resolution_notes": row.resolution_notes,
        "resolved_by": row.resolved_by,
    })


class SqlEscalationRepository(EscalationRepository):
    """升级执行记录的数据库读写 (Database-backed escalation repository)"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session) -> None:
        self.session_factory = session_factory

    async def save_execution(self, execution: EscalationExecution) -> EscalationExecution:
        async with self.session_factory() as db:
            row = await db.get(EscalationExecutionRecord, execution.id) if execution.id is not None else None
            if row is None:
                row = EscalationExecutionRecord(chain_id=execution.chain_id, started_at=execution.started_at)
                db.add(row)
            row.ticket_id = execution.ticket_id
            row.alert_id = execution.alert_id
            row.current_level = execution.current_level
            row.level_history = [e.model_dump(mode="json") for e in execution.level_history]
            row.status = execution.status.value
            row.meta = execution.metadata.model_dump(mode="json")
            row.completed_at = execution.completed_at
            row.resolution_notes = execution.resolution_notes
            row.resolved_by = execution.resolved_by
            await db.commit()
            await db.refresh(row)
            return execution_from_row(row)

    async def get_execution(self, execution_id: int) -> Optional[EscalationExecution]:
        async with self.session_factory() as db:
            row = await db.get(EscalationExecutionRecord, execution_id)
            return execution_from_row(row) if row else None

    async def list_executions(self, status: Optional[str] = None, limit: int = 100) -> List[EscalationExecution]:
        query = select(EscalationExecutionRecord)
        if status:
            query = query.where(EscalationExecutionRecord.status == status)
        query = query.order_by(EscalationExecutionRecord.id.desc()).limit(limit)
        async with self.session_factory() as db:
            result = await db.execute(query)
            return [execution_from_row(row) for row in result.scalars().all()]

    async def find_active_execution(self, ticket_id: str, chain_id: int) -> Optional[EscalationExecution]:
        query = (
            select(EscalationExecutionRecord)
            .where(
                EscalationExecutionRecord.ticket_id == ticket_id,
                EscalationExecutionRecord.chain_id == chain_id,
                EscalationExecutionRecord.status == ExecutionStatus.ACTIVE.value,
            )
            .order_by(EscalationExecutionRecord.id.desc())
            .limit(1)
        )
        async with self.session_factory() as db:
            row = (await db.execute(query)).scalars().first()
            return execution_from_row(row) if row else None


class SqlTicketRepository(TicketRepository):
    """工单的创建、更新与分配 (Ticket create, update and assign)"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _apply(ticket: Ticket, fields: Dict[str, Any]) -> None:
        extra = dict(ticket.extra or {})
        for key, value in fields.items():
            if key in TICKET_COLUMNS:
                setattr(ticket, key, value)
            elif key == "extra" and isinstance(value, dict):
                extra.update(value)
            else:
                extra[key] = value
        ticket.extra = extra

    async def create_ticket(self, fields: Dict[str, Any]) -> str:
        async with self.session_factory() as db:
            ticket = Ticket(ticket_number=fields.get("ticket_number", ""), title=fields.get("title", ""))
            self._apply(ticket, fields)
            db.add(ticket)
            await db.commit()
            await db.refresh(ticket)
            logger.info("Created ticket %s (%s)", ticket.id, ticket.ticket_number)
            return str(ticket.id)

    async def _get(self, db: AsyncSession, ticket_id: str) -> Ticket:
        try:
            key = int(ticket_id)
        except (TypeError, ValueError):
            raise NotFoundError(f"Ticket {ticket_id} not found")
        ticket = await db.get(Ticket, key)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def update_ticket(self, ticket_id: str, updates: Dict[str, Any]) -> None:
        async with self.session_factory() as db:
            ticket = await self._get(db, ticket_id)
            self._apply(ticket, updates)
            await db.commit()

    async def assign_ticket(self, ticket_id: str, user_id: int) -> None:
        async with self.session_factory() as db:
            ticket = await self._get(db, ticket_id)
            ticket.assigned_to_id = user_id
            await db.commit()
            logger.info("Ticket %s assigned to user %s", ticket_id, user_id)
