"""
告警阈值模式定义 (Alert Threshold Schema Definitions)

定义阈值、字段条件、阈值动作（带类型标签的联合类型）、指标样本与评估结果等数据结构。
用于引擎内部数据传递，与 SQLAlchemy ORM 模型互补。

Defines thresholds, field conditions, threshold actions (a tagged union), metric
samples and evaluation results. Used for data passing inside the engine,
complementing the SQLAlchemy ORM models.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

UTC = timezone.utc


class ThresholdType(str, enum.Enum):
    """阈值类型 (Threshold type)"""
    COUNT_BASED = "count_based"
    TIME_BASED = "time_based"
    RATE_BASED = "rate_based"
    COMPOSITE = "composite"
    CPU_USAGE = "cpu_usage"
    MEMORY_USAGE = "memory_usage"
    DISK_USAGE = "disk_usage"
    TICKET_COUNT = "ticket_count"
    RESPONSE_TIME = "response_time"


class ComparisonOperator(str, enum.Enum):
    """阈值级比较运算符 (Threshold-level comparison operators)"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUALS = "greater_than_or_equals"
    LESS_THAN_OR_EQUALS = "less_than_or_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class EscalationType(str, enum.Enum):
    """升级方式 (Escalation type)"""
    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    PROGRESSIVE = "progressive"
    SCHEDULED = "scheduled"


# 数值比较运算符：这些运算符要求阈值必须配置 value
NUMERIC_OPERATORS = {
    "equals", "not_equals", "greater_than", "less_than",
    "greater_than_or_equals", "less_than_or_equals",
    "==", "!=", ">", "<", ">=", "<=",
}


class ThresholdCondition(BaseModel):
    """复合阈值的单个字段条件 (One field condition of a composite threshold)"""
    field: str
    operator: Literal["equals", "contains", "greater_than", "less_than", "in", "not_in", "regex"]
    value: Any = None
    case_sensitive: bool = False


class ThresholdConditions(BaseModel):
    """all: 全部成立 (AND)；any: 至少一个成立 (OR)"""
    all: List[ThresholdCondition] = Field(default_factory=list)
    any: List[ThresholdCondition] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# 阈值动作：按 type 区分的联合类型 (Threshold actions: union discriminated on `type`)
# ---------------------------------------------------------------------------

class CreateTicketConfig(BaseModel):
    new_ticket_data: Dict[str, Any] = Field(default_factory=dict)


class NotifyConfig(BaseModel):
    notification_channels: List[str] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list)


class EscalateConfig(BaseModel):
    escalation_chain_id: Optional[int] = None


class UpdateTicketConfig(BaseModel):
    ticket_updates: Dict[str, Any] = Field(default_factory=dict)


class RunScriptConfig(BaseModel):
    script_id: Optional[int] = None


class CreateTicketAction(BaseModel):
    type: Literal["create_ticket"] = "create_ticket"
    config: CreateTicketConfig = Field(default_factory=CreateTicketConfig)


class NotifyAction(BaseModel):
    type: Literal["notify"] = "notify"
    config: NotifyConfig = Field(default_factory=NotifyConfig)


class EscalateAction(BaseModel):
    type: Literal["escalate"] = "escalate"
    config: EscalateConfig = Field(default_factory=EscalateConfig)


class UpdateTicketAction(BaseModel):
    type: Literal["update_ticket"] = "update_ticket"
    config: UpdateTicketConfig = Field(default_factory=UpdateTicketConfig)


class RunScriptAction(BaseModel):
    type: Literal["run_script"] = "run_script"
    config: RunScriptConfig = Field(default_factory=RunScriptConfig)


ThresholdAction = Annotated[
    Union[CreateTicketAction, NotifyAction, EscalateAction, UpdateTicketAction, RunScriptAction],
    Field(discriminator="type"),
]


class ThresholdStatistics(BaseModel):
    """阈值运行统计 (Running threshold statistics)"""
    total_triggers: int = 0
    last_triggered: Optional[datetime] = None
    last_breached_value: Optional[float] = None
    total_escalations: int = 0
    successful_escalations: int = 0
    success_rate: Optional[float] = None


class Threshold(BaseModel):
    """告警阈值 (Alert threshold definition)"""
    id: int
    name: str
    description: Optional[str] = None
    type: ThresholdType = ThresholdType.COUNT_BASED
    severity: str = "medium"
    is_active: bool = True

    # 比较配置 (Comparison configuration)
    operator: Optional[str] = None
    value: Optional[float] = None
    conditions: ThresholdConditions = Field(default_factory=ThresholdConditions)

    # 窗口配置 (Window configuration)
    trigger_count: int = Field(1, ge=0)
    time_window_seconds: int = Field(300, ge=0)
    trigger_rate: float = Field(0.0, ge=0.0, le=1.0)
    cooldown_seconds: int = Field(0, ge=0)
    check_interval: int = Field(60, ge=0)
    client_id: Optional[str] = None

    actions: List[ThresholdAction] = Field(default_factory=list)

    # 升级配置 (Escalation configuration)
    escalation_chain_id: Optional[int] = None
    escalation_type: EscalationType = EscalationType.IMMEDIATE
    auto_escalate: bool = False
    escalation_delay: Optional[int] = None  # 判定窗口，分钟 (decision window, minutes)
    escalation_threshold: Optional[int] = None  # 窗口内所需违规次数 (breaches required in window)
    create_ticket: bool = False

    # 通知配置 (Notification configuration)
    notification_channels: List[str] = Field(default_factory=list)
    notification_recipients: List[str] = Field(default_factory=list)

    statistics: ThresholdStatistics = Field(default_factory=ThresholdStatistics)
    breach_count: int = 0
    last_breach_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    def definition_errors(self) -> list[str]:
        """列出定义问题；为空表示可评估 (List definition problems; empty means usable)."""
        errors = []
        op = (self.operator or "").strip().lower()
        if op in NUMERIC_OPERATORS and self.value is None:
            errors.append(f"operator '{self.operator}' requires a numeric value")
        if self.type == ThresholdType.COMPOSITE:
            if not op and not self.conditions.all and not self.conditions.any:
                errors.append("composite threshold has neither an operator nor conditions")
        elif not op:
            errors.append("threshold has no operator")
        return errors


class AlertMetric(BaseModel):
    """传入引擎的指标样本 (Metric sample pushed to the engine)"""
    device_id: str
    device_name: str = ""
    metric_type: str = ""
    value: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> str:
        return f"{self.metric_type}={self.value} on {self.device_name or self.device_id}"


class Evaluation(BaseModel):
    """单个阈值的评估结果 (Result of evaluating one threshold)"""
    breached: bool
    value: Optional[float] = None
    message: str = ""


class CheckResult(BaseModel):
    """一次样本检查的整体结果 (Outcome of checking one sample)"""
    breached: bool
    thresholds: List[int] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)
    executions: List[int] = Field(default_factory=list)
