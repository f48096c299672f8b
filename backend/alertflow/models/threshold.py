"""
告警阈值模型 (Alert Threshold Model)

定义阈值规则表：比较条件、复合字段条件、动作列表、窗口与冷却配置、升级设置和运行统计。
违规计数等软状态不保存在此表中，由引擎进程内的违规账本按阈值 ID 维护。

Defines the threshold table: comparison, composite field conditions, actions,
window and cooldown settings, escalation settings and running statistics.
Soft state such as breach counters lives in the engine's breach ledger, keyed
by threshold id.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Float, Boolean, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from alertflow.core.database import Base


class AlertThreshold(Base):
    """
    告警阈值表 (Alert Threshold Table)
    """
    __tablename__ = "alert_thresholds"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)  # 阈值名称 (Threshold Name)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 描述 (Description)
    type: Mapped[str] = mapped_column(String(30), nullable=False, default="count_based")  # 阈值类型 (Threshold Type)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")  # 严重程度 (Severity)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # 是否启用 (Is Active)

    # 比较条件 (Comparison)
    operator: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # 比较运算符 (Comparison Operator)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # 阈值 (Threshold Value)
    conditions: Mapped[dict] = mapped_column(JSON, default=dict)  # 复合条件 {all: [], any: []} (Composite Conditions)

    # 窗口与冷却 (Window and Cooldown)
    trigger_count: Mapped[int] = mapped_column(Integer, default=1)  # 触发次数 (Trigger Count)
    time_window_seconds: Mapped[int] = mapped_column(Integer, default=300)  # 时间窗口秒数 (Time Window Seconds)
    trigger_rate: Mapped[float] = mapped_column(Float, default=0.0)  # 触发比例 0-1 (Trigger Rate)
    cooldown_seconds: Mapped[int] = mapped_column(Integer, default=0)  # 升级冷却秒数 (Escalation Cooldown Seconds)
    check_interval: Mapped[int] = mapped_column(Integer, default=60)  # 检查间隔秒数 (Check Interval Seconds)
    client_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # 客户范围 (Client Scope)

    actions: Mapped[list] = mapped_column(JSON, default=list)  # 违规动作列表 (Breach Actions)

    # 升级设置 (Escalation Settings)
    escalation_chain_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)  # 升级链 ID (Escalation Chain ID)
    escalation_type: Mapped[str] = mapped_column(String(20), default="immediate")  # 升级方式 (Escalation Type)
    auto_escalate: Mapped[bool] = mapped_column(Boolean, default=False)  # 是否自动升级 (Auto Escalate)
    escalation_delay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 判定窗口分钟数 (Decision Window Minutes)
    escalation_threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 所需违规次数 (Required Breach Count)
    create_ticket: Mapped[bool] = mapped_column(Boolean, default=False)  # 是否创建工单 (Create Ticket)

    # 通知设置 (Notification Settings)
    notification_channels: Mapped[list] = mapped_column(JSON, default=list)  # 通知渠道 (Notification Channels)
    notification_recipients: Mapped[list] = mapped_column(JSON, default=list)  # 通知接收人 (Notification Recipients)

    # 统计 (Statistics)
    statistics: Mapped[dict] = mapped_column(JSON, default=dict)  # 运行统计 (Running Statistics)
    breach_count: Mapped[int] = mapped_column(Integer, default=0)  # 累计违规次数 (Total Breaches)
    last_breach_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 最近违规时间 (Last Breach Time)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 最近检查时间 (Last Check Time)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)
