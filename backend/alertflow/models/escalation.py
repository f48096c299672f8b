"""
升级链模型 (Escalation Chain Model)

定义升级链配置表和升级执行记录表。升级级别以 JSON 形式内嵌在升级链中，不单独建表。
执行记录随链路推进逐级更新，终结后不再变化。

Defines the escalation chain table and the escalation execution table. Levels
are embedded in the chain as JSON, not stored as rows of their own. Execution
rows are updated level by level and frozen once terminal.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from alertflow.core.database import Base


class EscalationChainRecord(Base):
    """
    升级链表 (Escalation Chain Table)

    有序的升级级别、分配规则、优先级规则以及运行统计和审计历史。
    """
    __tablename__ = "escalation_chains"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)  # 升级链名称 (Chain Name)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 描述 (Description)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # 是否启用 (Is Active)
    priority: Mapped[int] = mapped_column(Integer, default=0)  # 优先级，高者优先 (Priority, higher first)
    levels: Mapped[list] = mapped_column(JSON, nullable=False)  # 升级级别配置 (Levels Config)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # 分类 (Category)
    alert_types: Mapped[list] = mapped_column(JSON, default=list)  # 适用告警类型 (Alert Type Filter)
    severity_levels: Mapped[list] = mapped_column(JSON, default=list)  # 适用严重程度 (Severity Filter)
    assignment_rules: Mapped[dict] = mapped_column(JSON, default=dict)  # 分配规则 (Assignment Rules)
    priority_rules: Mapped[dict] = mapped_column(JSON, default=dict)  # 优先级规则 (Priority Rules)
    default_failure_threshold: Mapped[int] = mapped_column(Integer, default=3)  # 默认失败阈值 (Default Failure Threshold)
    failure_thresholds: Mapped[dict] = mapped_column(JSON, default=dict)  # 分类失败阈值 (Per-category Failure Thresholds)
    notification_templates: Mapped[dict] = mapped_column(JSON, default=dict)  # 通知模板 (Notification Templates)

    # 统计 (Statistics)
    total_escalations: Mapped[int] = mapped_column(Integer, default=0)  # 升级总数 (Total Escalations)
    successful_escalations: Mapped[int] = mapped_column(Integer, default=0)  # 成功升级数 (Successful Escalations)
    last_escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 最近升级时间 (Last Escalated)
    escalation_history: Mapped[list] = mapped_column(JSON, default=list)  # 升级审计历史 (Escalation History)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)


class EscalationExecutionRecord(Base):
    """
    升级执行记录表 (Escalation Execution Table)

    每次升级链运行一行；current_level 在 active 状态下单调不减。
    """
    __tablename__ = "escalation_executions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)  # 升级链 ID (Chain ID)
    ticket_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)  # 工单 ID (Ticket ID)
    alert_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # 告警 ID (Alert ID)
    current_level: Mapped[int] = mapped_column(Integer, default=0)  # 当前级别索引 (Current Level Index)
    level_history: Mapped[list] = mapped_column(JSON, default=list)  # 级别历史 (Level History)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)  # 状态 (Status)
    # "metadata" 是 Declarative 保留属性名，属性另取名，列名保持 metadata
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)  # 触发上下文快照 (Trigger Context Snapshot)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)  # 开始时间 (Start Time)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 结束时间 (Completion Time)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 处理说明 (Resolution Notes)
    resolved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 处理人 ID (Resolved By)
