"""
Telegram Webhook Router
Receives Bot API updates and routes them to the assistant
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from api.deps import get_db, get_assistant, get_messenger, verify_webhook_secret
from api.schemas.telegram import CallbackQuery, Message, Update, WebhookAck
from tools.notification_service import SHARE_CAREGIVER_REQUEST_ID


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])


async def _handle_callback(query: CallbackQuery, assistant, messenger, db: Session) -> str:
    actor = query.from_user
    reply = await assistant.handle_callback(actor.id, query.data or "", first_name=actor.first_name, db=db)
    await messenger.answer_callback(query.id)

    if reply.text:
        if query.message is not None:
            await messenger.edit_message(
                query.message.chat.id, query.message.message_id, reply.text, buttons=reply.buttons
            )
        else:
            await messenger.send_message(actor.id, reply.text)
    return "callback"


async def _handle_message(message: Message, assistant, messenger, db: Session) -> str:
    if message.from_user is None:
        return "ignored"

    actor = message.from_user
    kind = "text"

    if message.users_shared is not None and message.users_shared.first_user_id is not None:
        kind = "users_shared"
        reply = await assistant.handle_shared_user(
            actor.id,
            message.users_shared.request_id,
            message.users_shared.first_user_id,
            first_name=actor.first_name,
            db=db,
        )
    elif message.contact is not None and message.contact.user_id is not None:
        kind = "contact"
        reply = await assistant.handle_shared_user(
            actor.id, SHARE_CAREGIVER_REQUEST_ID, message.contact.user_id,
            first_name=actor.first_name, db=db,
        )
    elif message.largest_photo is not None:
        kind = "photo"
        reply = await assistant.handle_photo(actor.id, message.largest_photo.file_id, db=db)
    elif message.text:
        reply = await assistant.handle_text(actor.id, message.text, first_name=actor.first_name, db=db)
    else:
        return "ignored"

    if reply.text:
        await messenger.send_message(message.chat.id, reply.text, buttons=reply.buttons)
    return kind


@router.post("/webhook", response_model=WebhookAck)
async def telegram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    assistant=Depends(get_assistant),
    messenger=Depends(get_messenger),
    _verified: bool = Depends(verify_webhook_secret)
):
    """
    Handle one Telegram update

    Always acknowledges with 200 so Telegram does not redeliver;
    failures are logged.
    """
    try:
        payload: Dict[str, Any] = await request.json()
        update = Update.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed update: {e}")
        return WebhookAck(handled="malformed")

    try:
        if update.callback_query is not None:
            handled = await _handle_callback(update.callback_query, assistant, messenger, db)
        elif update.message is not None:
            handled = await _handle_message(update.message, assistant, messenger, db)
        else:
            handled = "ignored"
    except Exception:
        logger.exception(f"Failed to process update {update.update_id}")
        handled = "error"

    return WebhookAck(handled=handled)
