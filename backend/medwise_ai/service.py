from __future__ import annotations

import logging
from datetime import date
from typing import Any

from . import fallbacks, prompts
from .expiry import apply_disposal_expiry_override, apply_strip_expiry_override
from .gateway import FAILURE_EMPTY, AIResult, GeminiGateway
from .parsing import parse_json_object

logger = logging.getLogger(__name__)

CHATBOT_EMPTY_REPLY = (
    "I'm here to help with health-related questions. Please note that I'm an AI assistant and cannot "
    "replace professional medical advice. How can I assist you today?"
)


class MedicalAssistant:
    """Feature-level prompts over a :class:`GeminiGateway`.

    Every method returns a payload in its feature's shape. Gateway failures
    and unparseable answers are replaced by the matching static fallback,
    so callers never see a provider error.
    """

    def __init__(self, gateway: GeminiGateway) -> None:
        self.gateway = gateway

    def _generate_json(self, feature: str, prompt: str) -> tuple[dict[str, Any] | None, AIResult]:
        result = self.gateway.generate(prompt)
        if not result.ok:
            logger.warning("%s: using fallback (%s)", feature, result.failure)
            return None, result
        parsed = parse_json_object(result.text)
        if parsed is None:
            logger.warning("%s: model answer was not a JSON object, using fallback", feature)
        return parsed, result

    def analyze_prescription(self, extracted_text: str) -> dict[str, Any]:
        parsed, result = self._generate_json("prescription", prompts.prescription_prompt(extracted_text))
        if parsed is not None:
            return parsed
        return fallbacks.prescription_fallback(fallbacks.prescription_message_for(result.failure))

    def analyze_ocr_text(self, ocr_text: str, today: date | None = None) -> dict[str, Any]:
        parsed, result = self._generate_json("ocr", prompts.ocr_prompt(ocr_text))
        if parsed is None:
            return fallbacks.ocr_fallback(fallbacks.ocr_message_for(result.failure), today=today)
        return apply_strip_expiry_override(parsed, today)

    def otc_recommendations(self, symptoms: str, user_info: dict[str, Any] | None = None) -> dict[str, Any]:
        parsed, _ = self._generate_json("otc", prompts.otc_prompt(symptoms, user_info))
        return parsed if parsed is not None else fallbacks.otc_fallback()

    def donate_dispose_recommendation(
        self,
        medicine_info: dict[str, Any],
        today: date | None = None,
    ) -> dict[str, Any]:
        parsed, _ = self._generate_json("donate_dispose", prompts.donate_dispose_prompt(medicine_info))
        recommendation = parsed if parsed is not None else fallbacks.donate_dispose_fallback()
        return apply_disposal_expiry_override(recommendation, medicine_info, today)

    def disposal_guidelines(self, medicine_type: str, location: str) -> dict[str, Any]:
        parsed, _ = self._generate_json(
            "disposal_guidelines",
            prompts.disposal_guidelines_prompt(medicine_type, location),
        )
        return parsed if parsed is not None else fallbacks.disposal_guidelines_fallback()

    def chatbot_reply(self, message: str, context: str = "") -> str:
        result = self.gateway.generate(prompts.chatbot_prompt(message, context))
        if result.ok:
            return result.text.strip() or CHATBOT_EMPTY_REPLY
        if result.failure == FAILURE_EMPTY:
            return CHATBOT_EMPTY_REPLY
        logger.warning("chatbot: using fallback reply (%s)", result.failure)
        return fallbacks.CHATBOT_FALLBACK_REPLY
