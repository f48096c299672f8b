"""
AlertFlow 告警阈值与升级链引擎 (AlertFlow Threshold & Escalation Engine)

Evaluates incoming metric samples against configured thresholds and drives
multi-level escalation chains for the breaches that warrant human attention.
"""
__version__ = "0.1.0"
