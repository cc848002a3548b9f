from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from storage.time_utils import utc_now

from .gateway import FAILURE_INVALID_CREDENTIAL, FAILURE_QUOTA

PRESCRIPTION_FAILURE_MESSAGES = {
    FAILURE_QUOTA: "AI Quota exceeded. Please check your Gemini billing details.",
    FAILURE_INVALID_CREDENTIAL: "Invalid Gemini API key. Please check your .env configuration.",
}
PRESCRIPTION_GENERIC_MESSAGE = "AI analysis service is temporarily unavailable"
PRESCRIPTION_FORMAT_MESSAGE = "Analysis failed to format correctly"

OCR_FAILURE_MESSAGES = {
    FAILURE_QUOTA: "AI Quota exceeded. Please check your billing.",
    FAILURE_INVALID_CREDENTIAL: "Invalid API key.",
}
OCR_GENERIC_MESSAGE = "OCR analysis service is temporarily unavailable"

CHATBOT_FALLBACK_REPLY = (
    "I'm experiencing some technical difficulties. Please try again later. "
    "For urgent medical concerns, please contact your healthcare provider."
)


def prescription_message_for(failure: str | None) -> str:
    if failure is None:
        return PRESCRIPTION_FORMAT_MESSAGE
    return PRESCRIPTION_FAILURE_MESSAGES.get(failure, PRESCRIPTION_GENERIC_MESSAGE)


def ocr_message_for(failure: str | None) -> str | None:
    if failure is None:
        return None
    return OCR_FAILURE_MESSAGES.get(failure, OCR_GENERIC_MESSAGE)


def prescription_fallback(message: str | None = None) -> dict[str, Any]:
    return {
        "summary": message
        or "AI analysis is currently unavailable. Please consult your healthcare provider for medication information.",
        "medications": [
            {
                "name": "Analysis unavailable",
                "purpose": "Please try again or consult your pharmacist",
                "dosage": "As prescribed",
                "frequency": "As directed",
                "instructions": "Follow professional guidance",
                "sideEffects": ["Consult healthcare provider"],
                "warnings": ["Please verify with your doctor"],
            }
        ],
        "importantNotes": [
            "Take medications as prescribed",
            "Consult your pharmacist for questions",
            "Keep regular medical appointments",
        ],
        "disclaimer": "This AI service is temporarily limited. Always consult healthcare professionals for medical advice.",
    }


def ocr_fallback(message: str | None = None, today: date | None = None) -> dict[str, Any]:
    placeholder_expiry = (today or utc_now().date()) + timedelta(days=365)
    return {
        "name": message or "Unable to read text clearly",
        "manufacturer": "Please check manually",
        "expiryDate": placeholder_expiry.isoformat(),
        "batchNumber": "Unknown",
        "strength": "Please check packaging",
        "isExpired": False,
        "recommendation": "dispose",
        "reasoning": message or "OCR analysis failed. Please check expiry date manually and dispose if expired.",
    }


def otc_fallback() -> dict[str, Any]:
    return {
        "recommendations": [
            {
                "medicine": "Consult pharmacist for recommendations",
                "type": "Professional guidance",
                "dosage": "As recommended by pharmacist",
                "duration": "As advised",
                "sideEffects": ["Varies by medication"],
                "warnings": ["Consult healthcare provider"],
            }
        ],
        "generalAdvice": "Please consult a pharmacist or healthcare provider for appropriate recommendations.",
        "whenToSeeDoctor": "If symptoms persist or worsen, seek medical attention immediately.",
        "disclaimer": "AI recommendations are unavailable. Please consult healthcare professionals.",
    }


def donate_dispose_fallback() -> dict[str, Any]:
    return {
        "recommendation": "dispose",
        "reasoning": "Unable to analyze medicine information. For safety, we recommend proper disposal.",
        "instructions": [
            "Check expiry date manually",
            "Contact local pharmacy for disposal programs",
            "Do not throw in regular trash",
        ],
        "resources": ["Local pharmacy", "Healthcare provider", "Municipal waste programs"],
        "warnings": ["Never share prescription medications", "Always dispose of expired medicines safely"],
    }


def disposal_guidelines_fallback() -> dict[str, Any]:
    return {
        "guidelines": {
            "general": [
                "Remove or black out personal information on prescription labels",
                "Keep medicines in original containers when possible",
                "Do not crush or dissolve medicines unless specifically instructed",
                "Never flush medicines down the toilet unless specifically directed",
            ],
            "safeDisposal": [
                "Use FDA-approved disposal programs",
                "Take to pharmacy take-back programs",
                "Use municipal hazardous waste programs",
                "Follow DEA National Prescription Drug Take Back events",
            ],
            "specificTypes": {
                "controlled": [
                    "Contact DEA-authorized collection sites",
                    "Use mail-back programs for controlled substances",
                    "Never give to unauthorized persons",
                ],
                "liquid": [
                    "Do not pour down drains",
                    "Absorb with kitty litter or coffee grounds",
                    "Seal in plastic bag before disposal",
                ],
                "inhalers": [
                    "Check if inhaler is empty",
                    "Follow manufacturer instructions",
                    "Some inhalers are recyclable",
                ],
            },
            "emergency": [
                "If no take-back program available, mix with unpalatable substance",
                "Place in sealed container",
                "Throw in household trash",
                "Remove personal information from labels",
            ],
        },
        "localResources": [
            {
                "name": "Local Pharmacy Chain",
                "type": "Pharmacy take-back",
                "description": "Most major pharmacy chains accept expired medicines",
                "contact": "Visit pharmacy customer service",
            }
        ],
    }
