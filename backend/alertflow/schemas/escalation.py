"""
升级链模式定义 (Escalation Chain Schema Definitions)

定义升级链、升级级别、分配规则、优先级规则、升级执行及技术人员档案等数据结构。

Defines escalation chains, levels, assignment rules, priority rules, escalation
executions and technician profiles.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AssignmentType(str, enum.Enum):
    """级别分配策略 (Level assignment strategy)"""
    SPECIFIC_USER = "specific_user"
    USER_GROUP = "user_group"
    ROUND_ROBIN = "round_robin"
    LEAST_LOADED = "least_loaded"
    SKILL_BASED = "skill_based"
    TIME_BASED = "time_based"
    PRIORITY_BASED = "priority_based"


class TriggerType(str, enum.Enum):
    """级别触发条件类型 (Level trigger condition type)"""
    FAILURE_COUNT = "failure_count"
    TIME_ELAPSED = "time_elapsed"
    NO_RESPONSE = "no_response"
    SEVERITY_LEVEL = "severity_level"
    CUSTOM_CONDITION = "custom_condition"


class ExecutionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}


class LevelOutcome(str, enum.Enum):
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    TIMEOUT = "timeout"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# 升级级别 (Escalation level)
# ---------------------------------------------------------------------------

class AssignTo(BaseModel):
    """级别分配目标 (Level assignment target)"""
    user_id: Optional[int] = None
    user_ids: List[int] = Field(default_factory=list)
    group_id: Optional[int] = None
    group_name: Optional[str] = None
    skills: List[str] = Field(default_factory=list)


class LevelTrigger(BaseModel):
    """级别触发条件 (Condition that must hold for a level to fire)"""
    type: TriggerType
    value: Any = None
    condition: Optional[str] = None


class EscalationLevel(BaseModel):
    """升级链中的一级 (One step of an escalation chain)"""
    order: int
    name: str
    assignment_type: AssignmentType
    assign_to: AssignTo = Field(default_factory=AssignTo)
    trigger: Optional[LevelTrigger] = None
    wait_minutes: int = Field(30, ge=0)
    notification_channels: List[str] = Field(default_factory=list)
    auto_reassign: bool = False
    skip_if_unavailable: bool = False


# ---------------------------------------------------------------------------
# 分配规则 (Assignment rules)
# ---------------------------------------------------------------------------

class RoundRobinRule(BaseModel):
    user_pool: List[int] = Field(default_factory=list)
    last_assigned_index: int = -1
    skip_offline_users: bool = False


class LeastLoadedRule(BaseModel):
    user_pool: List[int] = Field(default_factory=list)
    max_tickets_per_user: Optional[int] = None
    balancing_period_hours: Optional[int] = None


class SkillBasedRule(BaseModel):
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    minimum_skill_match: float = Field(0, ge=0, le=100)  # 百分比 (percent)


class Shift(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = 周日 (Sunday)
    start_time: str  # HH:MM
    end_time: str  # HH:MM


class WeeklySchedule(BaseModel):
    timezone: str = "UTC"
    shifts: List[Shift] = Field(default_factory=list)


class UserSchedule(BaseModel):
    user_id: int
    schedule: WeeklySchedule = Field(default_factory=WeeklySchedule)


class TimeBasedRule(BaseModel):
    schedules: List[UserSchedule] = Field(default_factory=list)


class AssignmentRules(BaseModel):
    """按策略区分的分配配置 (Strategy-specific assignment configuration)"""
    round_robin: Optional[RoundRobinRule] = None
    least_loaded: Optional[LeastLoadedRule] = None
    skill_based: Optional[SkillBasedRule] = None
    time_based: Optional[TimeBasedRule] = None
    group_cursors: Dict[str, int] = Field(default_factory=dict)  # 组内轮转游标：组 → 上次分配的用户


class PriorityThreshold(BaseModel):
    priority: str
    escalate_after_minutes: int = 0
    skip_levels: int = 0


class PriorityRules(BaseModel):
    enabled: bool = False
    thresholds: List[PriorityThreshold] = Field(default_factory=list)

    def bracket_for(self, priority: Optional[str]) -> Optional[PriorityThreshold]:
        if not self.enabled or not priority:
            return None
        for bracket in self.thresholds:
            if bracket.priority == priority:
                return bracket
        return None


class NotificationTemplate(BaseModel):
    subject: str = ""
    body: str = ""


class NotificationTemplates(BaseModel):
    escalation: Optional[NotificationTemplate] = None
    assignment: Optional[NotificationTemplate] = None


class ChainHistoryEntry(BaseModel):
    """升级链审计日志条目 (Chain audit log entry)"""
    ticket_id: Optional[str] = None
    alert_id: Optional[str] = None
    from_user: Optional[int] = None
    to_user: Optional[int] = None
    level: int
    reason: str
    timestamp: datetime
    success: bool


class EscalationChain(BaseModel):
    """升级链 (Escalation chain)"""
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    priority: int = 0
    levels: List[EscalationLevel] = Field(default_factory=list)
    category: Optional[str] = None
    alert_types: List[str] = Field(default_factory=list)
    severity_levels: List[str] = Field(default_factory=list)
    assignment_rules: AssignmentRules = Field(default_factory=AssignmentRules)
    priority_rules: PriorityRules = Field(default_factory=PriorityRules)
    default_failure_threshold: int = 3
    failure_thresholds: Dict[str, Any] = Field(default_factory=dict)
    notification_templates: NotificationTemplates = Field(default_factory=NotificationTemplates)

    # 统计 (Statistics)
    total_escalations: int = 0
    successful_escalations: int = 0
    last_escalated_at: Optional[datetime] = None
    escalation_history: List[ChainHistoryEntry] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    def ordered_levels(self) -> List[EscalationLevel]:
        return sorted(self.levels, key=lambda level: level.order)

    def applies_to(self, alert_type: Optional[str], severity: Optional[str]) -> bool:
        """按告警类型和严重程度过滤 (Scope filter on alert type and severity)"""
        if self.alert_types and alert_type not in self.alert_types:
            return False
        if self.severity_levels and severity not in self.severity_levels:
            return False
        return True


# ---------------------------------------------------------------------------
# 升级执行 (Escalation execution)
# ---------------------------------------------------------------------------

class LevelHistoryEntry(BaseModel):
    level: int
    assigned_to: Optional[int] = None
    assigned_at: datetime
    completed_at: Optional[datetime] = None
    outcome: Optional[LevelOutcome] = None  # None 表示级别仍在等待 (pending)
    notes: Optional[str] = None


class ExecutionMetadata(BaseModel):
    trigger_reason: str = ""
    original_assignee: Optional[int] = None
    priority: Optional[str] = None
    severity: Optional[str] = None
    alert_type: Optional[str] = None
    client_name: Optional[str] = None
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    threshold_id: Optional[int] = None
    failure_count: int = 0  # 启动时已知的失败次数 (failures known at start)
    elapsed_minutes: float = 0  # 启动前已经过的分钟数 (minutes already elapsed at start)
    dispatch_failures: int = 0
    reassign_attempts: Dict[str, int] = Field(default_factory=dict)  # 级别索引 → 重新分配次数


class EscalationExecution(BaseModel):
    """一次升级链运行 (One escalation chain run)"""
    id: Optional[int] = None
    chain_id: int
    ticket_id: Optional[str] = None
    alert_id: Optional[str] = None
    current_level: int = 0
    level_history: List[LevelHistoryEntry] = Field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.ACTIVE
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)
    started_at: datetime
    completed_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    resolved_by: Optional[int] = None

    model_config = {"from_attributes": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def current_entry(self) -> Optional[LevelHistoryEntry]:
        """当前级别尚未结束的历史条目 (Open history entry of the current level)"""
        if self.level_history:
            entry = self.level_history[-1]
            if entry.level == self.current_level and entry.outcome is None:
                return entry
        return None


class EscalationContext(BaseModel):
    """触发升级的上下文 (Context that triggers a chain run)"""
    trigger_reason: str
    ticket_id: Optional[str] = None
    alert_id: Optional[str] = None
    current_assignee_id: Optional[int] = None
    failure_count: int = 0
    elapsed_minutes: float = 0
    severity: Optional[str] = None
    priority: Optional[str] = None
    alert_type: Optional[str] = None
    client_name: Optional[str] = None
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    threshold_id: Optional[int] = None


# ---------------------------------------------------------------------------
# 技术人员档案 (Technician profile)
# ---------------------------------------------------------------------------

class Availability(BaseModel):
    status: str = "available"  # available / busy / offline / on_break
    schedule: Optional[WeeklySchedule] = None
    next_available: Optional[datetime] = None


class TechnicianProfile(BaseModel):
    user_id: int
    name: str = ""
    email: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    certifications: List[Dict[str, Any]] = Field(default_factory=list)
    experience_level: int = Field(0, ge=0, le=10)
    specializations: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    availability: Availability = Field(default_factory=Availability)
    current_ticket_count: int = 0
    max_concurrent_tickets: int = 10
    performance: Dict[str, Any] = Field(default_factory=dict)
    preferred_alert_types: List[str] = Field(default_factory=list)
    preferred_clients: List[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def is_offline(self) -> bool:
        return self.availability.status == "offline"


# ---------------------------------------------------------------------------
# 接口请求体 (API request bodies)
# ---------------------------------------------------------------------------

class ResolveRequest(BaseModel):
    notes: Optional[str] = None
    resolved_by: Optional[int] = None


class SignalRequest(BaseModel):
    """失败、升级、取消信号 (Fail, escalate and cancel signals)"""
    reason: Optional[str] = None
