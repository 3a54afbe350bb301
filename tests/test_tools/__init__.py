"""
Test Tools Package
Tests for the tools module (schedule normalizer, notification service)
"""

__all__ = [
    "test_schedule_normalizer",
    "test_notification_service",
]
