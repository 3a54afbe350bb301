"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Optional
from fastapi import Depends, HTTPException, status, Header

from database import get_db  # noqa: F401
from config import settings


async def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key")
) -> Optional[str]:
    """
    API key authentication dependency
    Returns the API key if provided
    """
    return x_api_key


async def verify_api_key(
    api_key: Optional[str] = Depends(get_api_key)
) -> str:
    """
    Verify API key for operations endpoints
    Raises HTTPException if invalid
    """
    if not settings.API_KEY:
        return "no-key-required"

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "API-Key"},
        )

    if api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def verify_webhook_secret(
    secret: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token")
) -> bool:
    """
    Check the secret token Telegram sends with every webhook call
    Open when no secret is configured
    """
    if not settings.TELEGRAM_WEBHOOK_SECRET:
        return True

    if secret != settings.TELEGRAM_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook secret",
        )
    return True


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_medication_service():
        from services.medication_service import medication_service
        return medication_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service

    @staticmethod
    def get_caregiver_service():
        from services.caregiver_service import caregiver_service
        return caregiver_service

    @staticmethod
    def get_assistant_service():
        from services.assistant_service import assistant_service
        return assistant_service

    @staticmethod
    def get_messenger():
        from tools.notification_service import messenger
        return messenger

    @staticmethod
    def get_job_scheduler():
        from actions.job_scheduler import job_scheduler
        return job_scheduler


# Service dependency instances
services = ServiceDependency()


def get_assistant():
    """Conversational service dependency"""
    return services.get_assistant_service()


def get_messenger():
    """Outbound messaging dependency"""
    return services.get_messenger()


def get_scheduler():
    """Job scheduler dependency"""
    return services.get_job_scheduler()
