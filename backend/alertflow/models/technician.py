"""
技术人员档案模型 (Technician Profile Model)

技能、经验、所属组、可用状态与并发工单上限，作为分配策略的只读输入。

Skills, experience, group membership, availability and concurrent-ticket
limits; a read-only input of the assignment strategies.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from alertflow.core.database import Base


class TechnicianProfileRecord(Base):
    """技术人员档案表 (Technician Profile Table)"""
    __tablename__ = "technician_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)  # 用户 ID (User ID)
    name: Mapped[str] = mapped_column(String(255), default="")  # 姓名 (Name)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # 邮箱 (Email)
    skills: Mapped[list] = mapped_column(JSON, default=list)  # 技能 (Skills)
    certifications: Mapped[list] = mapped_column(JSON, default=list)  # 认证 (Certifications)
    experience_level: Mapped[int] = mapped_column(Integer, default=0)  # 经验等级 0-10 (Experience Level)
    specializations: Mapped[list] = mapped_column(JSON, default=list)  # 专长 (Specializations)
    groups: Mapped[list] = mapped_column(JSON, default=list)  # 所属组 (Groups)
    availability: Mapped[dict] = mapped_column(JSON, default=dict)  # 可用状态与排班 (Availability)
    current_ticket_count: Mapped[int] = mapped_column(Integer, default=0)  # 当前工单数 (Current Ticket Count)
    max_concurrent_tickets: Mapped[int] = mapped_column(Integer, default=10)  # 并发工单上限 (Max Concurrent Tickets)
    performance: Mapped[dict] = mapped_column(JSON, default=dict)  # 绩效统计 (Performance)
    preferred_alert_types: Mapped[list] = mapped_column(JSON, default=list)  # 偏好告警类型 (Preferred Alert Types)
    preferred_clients: Mapped[list] = mapped_column(JSON, default=list)  # 偏好客户 (Preferred Clients)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)
