"""
Tools Package
Schedule normalization and messaging for the MedAssist system
"""

from .schedule_normalizer import (
    normalize_frequency,
    normalize_time,
    infer_time_from_name,
    is_due_today,
    days_since_creation,
    local_day_bounds,
    local_today,
    local_hhmm,
    utcnow
)

from .notification_service import (
    ActionKind,
    Button,
    Messenger,
    NotificationResult,
    TelegramMessenger,
    encode_action,
    decode_action,
    reminder_buttons,
    confirm_buttons,
    messenger,
    SHARE_CAREGIVER_REQUEST_ID,
    SHARE_PATIENT_REQUEST_ID
)


__all__ = [
    # Schedule Normalizer
    "normalize_frequency",
    "normalize_time",
    "infer_time_from_name",
    "is_due_today",
    "days_since_creation",
    "local_day_bounds",
    "local_today",
    "local_hhmm",
    "utcnow",

    # Notification Service
    "ActionKind",
    "Button",
    "Messenger",
    "NotificationResult",
    "TelegramMessenger",
    "encode_action",
    "decode_action",
    "reminder_buttons",
    "confirm_buttons",
    "messenger",
    "SHARE_CAREGIVER_REQUEST_ID",
    "SHARE_PATIENT_REQUEST_ID"
]
