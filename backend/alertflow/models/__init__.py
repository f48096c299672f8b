"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：阈值、升级链、升级执行、技术人员档案与工单。

Centrally exports all SQLAlchemy ORM models: thresholds, escalation chains,
escalation executions, technician profiles and tickets.
"""
from alertflow.models.threshold import AlertThreshold
from alertflow.models.escalation import EscalationChainRecord, EscalationExecutionRecord
from alertflow.models.technician import TechnicianProfileRecord
from alertflow.models.ticket import Ticket

__all__ = [
    "AlertThreshold", "EscalationChainRecord", "EscalationExecutionRecord",
    "TechnicianProfileRecord", "Ticket",
]
