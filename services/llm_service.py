"""
LLM Service
Inference boundary: intent parsing, dosage checks and prescription reading
through an OpenAI-compatible chat completions API
"""

import logging
from typing import Dict, List, Optional, Any
import asyncio
import base64
import json
import re
from datetime import datetime

import requests

from config import settings
from api.schemas.intent import (
    CommandBase,
    UnknownCommand,
    DosageSafety,
    PrescriptionAnalysis,
    parse_command,
)
from services.prompts import INTENT_SYSTEM_PROMPT, DOSAGE_SAFETY_PROMPT, PRESCRIPTION_PROMPT
from tools.schedule_normalizer import get_zone


logger = logging.getLogger(__name__)


class LLMService:
    """
    Service for interacting with the inference provider.
    Every public method tolerates provider failures and malformed output.
    """

    def __init__(self):
        self.model_name = settings.LLM_MODEL
        self.vision_model = settings.LLM_VISION_MODEL
        self.temperature = settings.LLM_TEMPERATURE
        self.max_tokens = settings.LLM_MAX_TOKENS

        # Usage tracking
        self._total_tokens_used = 0
        self._request_count = 0

    @property
    def configured(self) -> bool:
        return bool(settings.LLM_API_KEY)

    def _time_context(self) -> str:
        now_local = datetime.now(get_zone())
        return f"Current local time: {now_local.strftime('%Y-%m-%d %H:%M')} ({settings.TIMEZONE})"

    async def _chat_completion(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        json_mode: bool = True
    ) -> str:
        """POST /chat/completions and return the first choice's text"""
        if not self.configured:
            raise RuntimeError("LLM is not configured. Set LLM_API_KEY.")

        headers = {
            "Authorization": f"Bearer {settings.LLM_API_KEY}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": model or self.model_name,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        resp = await asyncio.get_running_loop().run_in_executor(
            None,
            lambda: requests.post(
                f"{settings.LLM_BASE_URL}/chat/completions",
                headers=headers,
                json=payload,
                timeout=settings.LLM_TIMEOUT_SECONDS,
            ),
        )

        if resp.status_code != 200:
            logger.error("LLM API error %s: %s", resp.status_code, resp.text[:500])
            raise RuntimeError(f"LLM API error: {resp.status_code}")

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            return ""

        usage = data.get("usage") or {}
        self._total_tokens_used += usage.get("total_tokens", 0)
        self._request_count += 1

        return choices[0].get("message", {}).get("content") or ""

    def parse_json_response(
        self,
        response: str,
        default: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Parse JSON from LLM response, handling common issues

        Args:
            response: Raw LLM response
            default: Default value if parsing fails

        Returns:
            Parsed JSON dictionary
        """
        if default is None:
            default = {}

        if not response:
            return default

        response = response.strip()

        try:
            parsed = json.loads(response)
            return parsed if isinstance(parsed, dict) else default
        except json.JSONDecodeError:
            pass

        # Try to extract JSON from markdown code blocks
        json_patterns = [
            r'```json\s*([\s\S]*?)\s*```',
            r'```\s*([\s\S]*?)\s*```',
            r'\{[\s\S]*\}',
        ]

        for pattern in json_patterns:
            match = re.search(pattern, response)
            if match:
                try:
                    json_str = match.group(1) if '```' in pattern else match.group(0)
                    parsed = json.loads(json_str.strip())
                    if isinstance(parsed, dict):
                        return parsed
                except json.JSONDecodeError:
                    continue

        logger.warning(f"Failed to parse JSON from response: {response[:200]}...")
        return default

    async def parse_intent(self, text: str) -> CommandBase:
        """
        Turn a user message into a typed command.
        Provider errors and malformed output both come back as UnknownCommand.
        """
        if not text or not text.strip():
            return UnknownCommand()

        try:
            response = await self._chat_completion([
                {"role": "system", "content": f"{INTENT_SYSTEM_PROMPT}\n\n{self._time_context()}"},
                {"role": "user", "content": text},
            ])
        except Exception as e:
            logger.error(f"Intent parsing failed: {e}")
            return UnknownCommand()

        command = parse_command(self.parse_json_response(response))
        logger.debug(f"Parsed intent {command.intent!r} from {text[:80]!r}")
        return command

    async def check_dosage_safety(self, name: str, dosage: Optional[str]) -> DosageSafety:
        """
        Ask whether a dosage looks plausible.
        Without a dosage, or when the check itself fails, the entry is treated as safe.
        """
        if not dosage or not dosage.strip():
            return DosageSafety(safe=True)

        try:
            response = await self._chat_completion([
                {"role": "user", "content": DOSAGE_SAFETY_PROMPT.format(name=name, dosage=dosage)},
            ])
        except Exception as e:
            logger.warning(f"Dosage safety check unavailable for {name!r}: {e}")
            return DosageSafety(safe=True)

        data = self.parse_json_response(response)
        safe = data.get("safe")
        return DosageSafety(
            safe=safe if isinstance(safe, bool) else True,
            warning=data.get("warning") if isinstance(data.get("warning"), str) else None,
        )

    async def analyze_prescription_image(self, image: bytes) -> PrescriptionAnalysis:
        """Read medications off a prescription photo"""
        if not image:
            return PrescriptionAnalysis()

        encoded = base64.b64encode(image).decode("ascii")
        try:
            response = await self._chat_completion(
                [{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": PRESCRIPTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
                    ],
                }],
                model=self.vision_model,
            )
        except Exception as e:
            logger.error(f"Prescription analysis failed: {e}")
            return PrescriptionAnalysis()

        data = self.parse_json_response(response)
        return PrescriptionAnalysis(
            is_legit=data.get("is_legit") is True,
            medications=data.get("medications") or [],
        )

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get usage statistics"""
        return {
            "provider": settings.LLM_BASE_URL,
            "model": self.model_name,
            "total_tokens_used": self._total_tokens_used,
            "request_count": self._request_count,
            "configured": self.configured,
        }


# Singleton instance
llm_service = LLMService()
