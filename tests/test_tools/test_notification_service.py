"""
Tests for Notification Service
Tests callback tokens, keyboards and the Telegram transport
"""

import json

import httpx
import pytest

from tools.notification_service import (
    ActionKind,
    Button,
    TelegramMessenger,
    SHARE_CAREGIVER_REQUEST_ID,
    decode_action,
    encode_action,
    reminder_buttons,
)


# =============================================================================
# Callback tokens
# =============================================================================

@pytest.mark.unit
class TestActionTokens:
    """Tests for button callback data"""

    def test_encode(self):
        assert encode_action(ActionKind.TAKEN, 42) == "taken:42"
        assert encode_action(ActionKind.CONFIRM_IMPORT) == "confirm_import"

    def test_decode(self):
        assert decode_action("snooze:7") == (ActionKind.SNOOZE, 7)
        assert decode_action("cancel_med") == (ActionKind.CANCEL_MEDICATION, None)

    @pytest.mark.parametrize("token", [None, "", "bogus:1", "taken:abc"])
    def test_decode_rejects_garbage(self, token):
        assert decode_action(token) == (None, None)

    def test_reminder_buttons_carry_medication_id(self):
        rows = reminder_buttons(5, 10)
        tokens = [button.callback_data for row in rows for button in row]
        assert tokens == ["taken:5", "skip:5", "snooze:5"]
        assert "10 min" in rows[1][0].text


# =============================================================================
# Telegram transport
# =============================================================================

def _messenger_with(handler) -> TelegramMessenger:
    messenger = TelegramMessenger(token="TEST", api_url="https://telegram.test")
    messenger._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return messenger


@pytest.mark.unit
class TestTelegramMessenger:
    """Tests for the Bot API client"""

    @pytest.mark.asyncio
    async def test_not_configured_returns_failure(self):
        messenger = TelegramMessenger()
        messenger.token = None
        result = await messenger.send_message(1, "hello")
        assert result.success is False
        assert result.error == "Telegram not configured"

    @pytest.mark.asyncio
    async def test_send_message_with_inline_keyboard(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 99}})

        messenger = _messenger_with(handler)
        result = await messenger.send_message(1001, "Time for Lisinopril", buttons=reminder_buttons(3, 10))
        await messenger.close()

        assert result.success is True
        assert result.message_id == 99
        assert seen["path"] == "/botTEST/sendMessage"
        assert seen["body"]["chat_id"] == 1001
        keyboard = seen["body"]["reply_markup"]["inline_keyboard"]
        assert keyboard[0][0]["callback_data"] == "taken:3"

    @pytest.mark.asyncio
    async def test_share_user_button_uses_reply_keyboard(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        messenger = _messenger_with(handler)
        await messenger.send_message(
            1001, "Pick", buttons=[[Button("Choose", request_users_id=SHARE_CAREGIVER_REQUEST_ID)]]
        )
        await messenger.close()

        markup = seen["body"]["reply_markup"]
        assert "keyboard" in markup
        assert markup["keyboard"][0][0]["request_users"]["request_id"] == SHARE_CAREGIVER_REQUEST_ID

    @pytest.mark.asyncio
    async def test_api_error_is_reported_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "description": "Forbidden: bot was blocked"})

        messenger = _messenger_with(handler)
        result = await messenger.send_message(1001, "hello")
        await messenger.close()

        assert result.success is False
        assert "blocked" in result.error

    @pytest.mark.asyncio
    async def test_http_error_is_reported_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, json={})

        messenger = _messenger_with(handler)
        result = await messenger.edit_message(1001, 5, "done")
        await messenger.close()

        assert result.success is False

    @pytest.mark.asyncio
    async def test_download_file(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/getFile"):
                return httpx.Response(200, json={"ok": True, "result": {"file_path": "photos/p.jpg"}})
            assert request.url.path == "/file/botTEST/photos/p.jpg"
            return httpx.Response(200, content=b"jpeg-bytes")

        messenger = _messenger_with(handler)
        content = await messenger.download_file("FILE1")
        await messenger.close()

        assert content == b"jpeg-bytes"
