"""
引擎协作方接口 (Engine Collaborator Interfaces)

引擎只依赖这些抽象基类：工单仓库、通知分发器、配置存储和升级执行仓库。
生产环境使用 SQLAlchemy/SMTP/Webhook 实现，测试使用内存实现。

The engine depends only on these abstract base classes: ticket repository,
notification dispatcher, configuration store and escalation repository.
Production wires SQLAlchemy/SMTP/webhook implementations; tests use in-memory
fakes.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from alertflow.schemas.escalation import EscalationChain, EscalationExecution, TechnicianProfile
from alertflow.schemas.threshold import Threshold


class TicketRepository(ABC):
    """工单协作方 (Ticket collaborator)"""

    @abstractmethod
    async def create_ticket(self, fields: Dict[str, Any]) -> str:
        """创建工单并返回工单 ID (Create a ticket, return its id)."""

    @abstractmethod
    async def update_ticket(self, ticket_id: str, updates: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def assign_ticket(self, ticket_id: str, user_id: int) -> None:
        ...


class NotificationDispatcher(ABC):
    """通知分发器 (Notification dispatcher)"""

    @abstractmethod
    async def notify(
        self,
        channel: str,
        recipients: List[str],
        subject: str,
        body: str,
        severity: Optional[str] = None,
    ) -> bool:
        """发送通知，返回是否成功 (Send a notification; returns success)."""


class ConfigurationStore(ABC):
    """阈值、升级链与技术人员档案的读取及统计回写 (Configuration reads and statistics write-back)"""

    @abstractmethod
    async def list_active_thresholds(self) -> List[Threshold]:
        ...

    @abstractmethod
    async def list_chains(self) -> List[EscalationChain]:
        ...

    @abstractmethod
    async def list_technician_profiles(self) -> List[TechnicianProfile]:
        ...

    @abstractmethod
    async def get_technician_profile(self, user_id: int) -> Optional[TechnicianProfile]:
        ...

    @abstractmethod
    async def get_current_ticket_count(self, user_id: int) -> int:
        """处理人名下未关闭工单数 (Open tickets currently assigned to the user)."""

    @abstractmethod
    async def save_chain(self, chain: EscalationChain) -> None:
        """回写游标、统计和审计历史 (Persist cursors, statistics and history)."""

    @abstractmethod
    async def save_threshold_statistics(self, threshold: Threshold) -> None:
        ...


class EscalationRepository(ABC):
    """升级执行持久化 (Escalation execution persistence)"""

    @abstractmethod
    async def save_execution(self, execution: EscalationExecution) -> EscalationExecution:
        """保存执行；首次保存时分配 id (Persist; assigns the id on first save)."""

    @abstractmethod
    async def get_execution(self, execution_id: int) -> Optional[EscalationExecution]:
        ...

    @abstractmethod
    async def list_executions(
        self, status: Optional[str] = None, limit: int = 100
    ) -> List[EscalationExecution]:
        ...

    @abstractmethod
    async def find_active_execution(self, ticket_id: str, chain_id: int) -> Optional[EscalationExecution]:
        """工单在该链上正在进行的执行 (The ticket's active execution on the chain, if any)."""
