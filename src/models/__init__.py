"""
Data Models Package

This package contains all Pydantic models used in the Business Manager system.
All data flowing through the system must conform to these schemas.
"""

from src.models.business import (
    Business,
    Job,
    JobCategory,
    Label,
    Occurrence,
    OneOffSchedule,
    OtherExpense,
    OtherIncome,
    Schedule,
    WeeklySchedule,
    coerce_amount,
    new_id,
    parse_day,
)
from src.models.report import (
    ALL_YEARS,
    ReportFilter,
    ReportPeriod,
    ReportRow,
    Transaction,
    TransactionSource,
)
from src.models.reminder import ReminderEvent
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Business models
    "Business",
    "Job",
    "JobCategory",
    "Label",
    "Occurrence",
    "OneOffSchedule",
    "OtherExpense",
    "OtherIncome",
    "Schedule",
    "WeeklySchedule",
    "coerce_amount",
    "new_id",
    "parse_day",
    # Report models
    "ALL_YEARS",
    "ReportFilter",
    "ReportPeriod",
    "ReportRow",
    "Transaction",
    "TransactionSource",
    # Reminder models
    "ReminderEvent",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
