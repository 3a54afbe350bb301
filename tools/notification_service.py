"""
Notification Service Tool
Messaging boundary: outbound text/buttons and inbound action tokens over the Telegram Bot API
"""

import logging
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import httpx

from config import settings


logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    """Callback actions carried by inline buttons"""
    TAKEN = "taken"
    SKIP = "skip"
    SNOOZE = "snooze"
    CONFIRM_MEDICATION = "confirm_med"
    CANCEL_MEDICATION = "cancel_med"
    CONFIRM_IMPORT = "confirm_import"
    CANCEL_IMPORT = "cancel_import"
    CAREGIVER_ACCEPT = "cg_accept"
    CAREGIVER_DENY = "cg_deny"


# request_id values of the "share a user" keyboard buttons
SHARE_CAREGIVER_REQUEST_ID = 1
SHARE_PATIENT_REQUEST_ID = 2


def encode_action(kind: ActionKind, target_id: Optional[int] = None) -> str:
    """Build a callback token such as 'taken:42'"""
    if target_id is None:
        return kind.value
    return f"{kind.value}:{target_id}"


def decode_action(token: Optional[str]) -> Tuple[Optional[ActionKind], Optional[int]]:
    """Parse a callback token; unknown tokens yield (None, None)"""
    if not token:
        return None, None

    kind_text, _, id_text = token.partition(":")
    try:
        kind = ActionKind(kind_text)
    except ValueError:
        return None, None

    target_id = None
    if id_text:
        try:
            target_id = int(id_text)
        except ValueError:
            return None, None

    return kind, target_id


@dataclass
class Button:
    """Inline button (callback) or reply-keyboard button (share a user)"""
    text: str
    callback_data: Optional[str] = None
    request_users_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.request_users_id is not None:
            return {
                "text": self.text,
                "request_users": {
                    "request_id": self.request_users_id,
                    "user_is_bot": False,
                    "max_quantity": 1,
                },
            }
        return {"text": self.text, "callback_data": self.callback_data or ""}


@dataclass
class NotificationResult:
    """Result of sending or editing a message"""
    success: bool
    recipient_id: Optional[int] = None
    message_id: Optional[int] = None
    delivered_at: Optional[datetime] = None
    error: Optional[str] = None


def reminder_buttons(medication_id: int, snooze_minutes: int) -> List[List[Button]]:
    """Taken / skipped / snooze affordances for a dose reminder"""
    return [
        [
            Button("✅ Taken", encode_action(ActionKind.TAKEN, medication_id)),
            Button("❌ Skip", encode_action(ActionKind.SKIP, medication_id)),
        ],
        [Button(f"⏰ Snooze {snooze_minutes} min", encode_action(ActionKind.SNOOZE, medication_id))],
    ]


def confirm_buttons(confirm: ActionKind, cancel: ActionKind, target_id: Optional[int] = None) -> List[List[Button]]:
    return [[
        Button("✅ Confirm", encode_action(confirm, target_id)),
        Button("❌ Cancel", encode_action(cancel, target_id)),
    ]]


class Messenger:
    """
    Outbound messaging contract.
    Implementations never raise on delivery problems; they return a failed result.
    """

    async def send_message(
        self,
        recipient_id: int,
        text: str,
        buttons: Optional[List[List[Button]]] = None
    ) -> NotificationResult:
        raise NotImplementedError

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Optional[List[List[Button]]] = None
    ) -> NotificationResult:
        raise NotImplementedError

    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> NotificationResult:
        raise NotImplementedError

    async def download_file(self, file_id: str) -> Optional[bytes]:
        raise NotImplementedError

    async def close(self):
        """Release transport resources"""


class TelegramMessenger(Messenger):
    """
    Telegram Bot API implementation

    API Documentation: https://core.telegram.org/bots/api
    """

    def __init__(self, token: Optional[str] = None, api_url: Optional[str] = None):
        self.token = token or settings.TELEGRAM_BOT_TOKEN
        self.api_url = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _build_markup(buttons: List[List[Button]]) -> Dict[str, Any]:
        rows = [[button.to_dict() for button in row] for row in buttons]
        if any(button.request_users_id is not None for row in buttons for button in row):
            return {"keyboard": rows, "one_time_keyboard": True, "resize_keyboard": True}
        return {"inline_keyboard": rows}

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.post(f"{self.api_url}/bot{self.token}/{method}", json=payload)
        response.raise_for_status()
        data = response.json()
        if not data.get("ok"):
            raise RuntimeError(data.get("description") or f"Telegram {method} failed")
        return data.get("result") or {}

    async def send_message(
        self,
        recipient_id: int,
        text: str,
        buttons: Optional[List[List[Button]]] = None
    ) -> NotificationResult:
        """Send a text message, optionally with buttons"""
        if not self.configured:
            logger.warning(f"[Telegram] Not configured, dropping message to {recipient_id}")
            return NotificationResult(
                success=False,
                recipient_id=recipient_id,
                error="Telegram not configured"
            )

        payload: Dict[str, Any] = {"chat_id": recipient_id, "text": text}
        if buttons:
            payload["reply_markup"] = self._build_markup(buttons)

        try:
            result = await self._call("sendMessage", payload)
            return NotificationResult(
                success=True,
                recipient_id=recipient_id,
                message_id=result.get("message_id"),
                delivered_at=datetime.utcnow()
            )
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"Telegram send error to {recipient_id}: {e}")
            return NotificationResult(success=False, recipient_id=recipient_id, error=str(e))

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Optional[List[List[Button]]] = None
    ) -> NotificationResult:
        """Replace the text of a sent message; its buttons are dropped unless new ones are given"""
        if not self.configured:
            return NotificationResult(success=False, recipient_id=chat_id, error="Telegram not configured")

        try:
            payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
            if buttons:
                payload["reply_markup"] = self._build_markup(buttons)
            await self._call("editMessageText", payload)
            return NotificationResult(success=True, recipient_id=chat_id, message_id=message_id)
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"Telegram edit error for {chat_id}/{message_id}: {e}")
            return NotificationResult(success=False, recipient_id=chat_id, message_id=message_id, error=str(e))

    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> NotificationResult:
        """Acknowledge a button press"""
        if not self.configured:
            return NotificationResult(success=False, error="Telegram not configured")

        payload: Dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text
        try:
            await self._call("answerCallbackQuery", payload)
            return NotificationResult(success=True)
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"Telegram callback answer error for {callback_id}: {e}")
            return NotificationResult(success=False, error=str(e))

    async def download_file(self, file_id: str) -> Optional[bytes]:
        """Fetch an uploaded file (prescription photo)"""
        if not self.configured:
            return None

        try:
            result = await self._call("getFile", {"file_id": file_id})
            file_path = result.get("file_path")
            if not file_path:
                return None
            client = await self._get_client()
            response = await client.get(f"{self.api_url}/file/bot{self.token}/{file_path}")
            response.raise_for_status()
            return response.content
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"Telegram download error for {file_id}: {e}")
            return None


# Singleton instance
messenger = TelegramMessenger()
