"""
Actions Module
Engines for reminders, reconciliation, reports, alerts, and confirmations
"""

from .alert_engine import (
    Alert,
    AlertType,
    AlertStatus,
    AlertEngine,
    alert_engine
)

from .reminder_engine import (
    DueDose,
    TickResult,
    ResponseOutcome,
    ReminderEngine,
    reminder_engine
)

from .reconciliation_engine import (
    ReconciliationResult,
    ReconciliationEngine,
    reconciliation_engine
)

from .report_engine import (
    AdherenceReport,
    ReportRunResult,
    ReportEngine,
    report_engine
)

from .appointment_engine import (
    AppointmentRunResult,
    AppointmentEngine,
    appointment_engine
)

from .confirmation_engine import (
    PendingConfirmationStore,
    ConfirmationOutcome,
    ConfirmationEngine,
    confirmation_engine,
    SESSION_EXPIRED_MESSAGE
)


__all__ = [
    # Alert Engine
    "Alert",
    "AlertType",
    "AlertStatus",
    "AlertEngine",
    "alert_engine",

    # Reminder Engine
    "DueDose",
    "TickResult",
    "ResponseOutcome",
    "ReminderEngine",
    "reminder_engine",

    # Reconciliation Engine
    "ReconciliationResult",
    "ReconciliationEngine",
    "reconciliation_engine",

    # Report Engine
    "AdherenceReport",
    "ReportRunResult",
    "ReportEngine",
    "report_engine",

    # Appointment Engine
    "AppointmentRunResult",
    "AppointmentEngine",
    "appointment_engine",

    # Confirmation Engine
    "PendingConfirmationStore",
    "ConfirmationOutcome",
    "ConfirmationEngine",
    "confirmation_engine",
    "SESSION_EXPIRED_MESSAGE"
]
