"""
工单模型 (Ticket Model)

引擎只关心创建、更新和分配工单所需的字段；处理人名下未关闭的工单数即其实时负载。

Only the fields the engine needs to create, update and assign tickets. The
number of open tickets assigned to a user is that user's live load.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from alertflow.core.database import Base

OPEN_TICKET_STATUSES = ("open", "in_progress")


class Ticket(Base):
    """工单表 (Ticket Table)"""
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    ticket_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)  # 工单编号 (Ticket Number)
    title: Mapped[str] = mapped_column(String(500), nullable=False)  # 标题 (Title)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 描述 (Description)
    priority: Mapped[str] = mapped_column(String(20), default="medium")  # 优先级 (Priority)
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)  # 状态 (Status)
    source: Mapped[str] = mapped_column(String(30), default="automation")  # 来源 (Source)
    device_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # 设备 ID (Device ID)
    device_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # 设备名称 (Device Name)
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # 客户名称 (Client Name)
    assigned_to_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)  # 处理人 ID (Assignee ID)
    extra: Mapped[dict] = mapped_column(JSON, default=dict)  # 自定义字段 (Custom Fields)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)
