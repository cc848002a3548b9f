from __future__ import annotations

import json
from typing import Any

ASSISTANT_NAME = "MedWise AI"

CHATBOT_SYSTEM_PROMPT = (
    f"You are {ASSISTANT_NAME}, a helpful healthcare assistant. You help users understand prescriptions, "
    "manage medicines responsibly, and provide basic health information.\n"
    "Guidelines:\n"
    "- Always include medical disclaimers\n"
    "- Don't provide specific medical diagnoses\n"
    "- Encourage consulting healthcare providers for serious concerns\n"
    "- Be helpful but emphasize the importance of professional medical advice\n"
    "- Focus on education and general wellness information"
)


def prescription_prompt(extracted_text: str) -> str:
    return "\n".join(
        [
            "You are a medical AI assistant. Analyze the following prescription/medical report text "
            "and provide a structured response.",
            "",
            f'Text: "{extracted_text}"',
            "",
            "Please provide:",
            "1. A plain language summary of the medical document",
            "2. A list of medications with their purposes, dosages, and frequencies",
            "3. Specific instructions for each medication (how to take, when to stop, etc.)",
            "4. Important health notes or warnings specifically mentioned in the report",
            "",
            "Format your response as JSON with this structure:",
            "{",
            '  "summary": "Brief explanation in simple terms",',
            '  "medications": [',
            "    {",
            '      "name": "Medicine name and strength",',
            '      "purpose": "What this medicine treats",',
            '      "dosage": "Amount per dose",',
            '      "frequency": "How often to take",',
            '      "instructions": "Specific way to take this medicine",',
            '      "sideEffects": ["list", "of", "common", "side", "effects"],',
            '      "warnings": ["specific", "warnings"]',
            "    }",
            "  ],",
            '  "importantNotes": ["list", "of", "general", "important", "health", "notes"],',
            '  "disclaimer": "Medical disclaimer text"',
            "}",
        ]
    )


def ocr_prompt(ocr_text: str) -> str:
    return "\n".join(
        [
            "Analyze this OCR text from a medicine strip/package and extract structured information:",
            "",
            f'OCR Text: "{ocr_text}"',
            "",
            "Extract and provide this information in JSON format:",
            "{",
            '  "name": "Medicine name",',
            '  "manufacturer": "Company name",',
            '  "expiryDate": "YYYY-MM-DD format",',
            '  "batchNumber": "Batch/Lot number",',
            '  "strength": "Dosage strength",',
            '  "isExpired": false,',
            '  "recommendation": "keep|donate|dispose",',
            '  "reasoning": "Explanation for recommendation"',
            "}",
            "",
            'If expiry date suggests medicine is expired, set isExpired to true and recommendation to "dispose".',
            'If medicine is not expired, recommend "donate" for unused medicines or "keep" for current use.',
        ]
    )


def otc_prompt(symptoms: str, user_info: dict[str, Any] | None = None) -> str:
    lines = [
        "As a medical AI assistant, provide over-the-counter medicine recommendations "
        f'for these symptoms: "{symptoms}"',
    ]
    profile = {key: value for key, value in (user_info or {}).items() if value not in (None, "", [])}
    if profile:
        lines.append(f"Patient details: {json.dumps(profile, ensure_ascii=True)}")
    lines.extend(
        [
            "",
            "Please provide a structured response in JSON format:",
            "{",
            '  "recommendations": [',
            "    {",
            '      "medicine": "OTC medicine name",',
            '      "type": "Medicine category (pain reliever, antacid, etc.)",',
            '      "dosage": "Typical adult dosage",',
            '      "duration": "How long to use",',
            '      "sideEffects": ["common", "side", "effects"],',
            '      "warnings": ["important", "warnings"]',
            "    }",
            "  ],",
            '  "generalAdvice": "General health advice for these symptoms",',
            '  "whenToSeeDoctor": "Warning signs that require medical attention",',
            '  "disclaimer": "Important medical disclaimer"',
            "}",
            "",
            "Important: Only recommend common, safe OTC medicines. Avoid anything the patient is allergic to "
            "or that interacts with their current medications. Include strong medical disclaimers.",
        ]
    )
    return "\n".join(lines)


def chatbot_prompt(message: str, context: str = "") -> str:
    parts = [CHATBOT_SYSTEM_PROMPT]
    transcript = (context or "").strip()
    if transcript:
        # Tail of the transcript only.
        parts.append("Conversation so far:\n" + transcript[-4000:])
    parts.append(f"User Message: {message}")
    return "\n\n".join(parts)


def donate_dispose_prompt(medicine_info: dict[str, Any]) -> str:
    return "\n".join(
        [
            "Based on this medicine information, provide a recommendation on whether to keep, donate, or dispose:",
            "",
            f"Medicine: {json.dumps(medicine_info, ensure_ascii=True)}",
            "",
            "Consider:",
            "- Expiry date",
            "- Condition of medicine",
            "- Type of medication",
            "- Safety considerations",
            "",
            "Respond in JSON format:",
            "{",
            '  "recommendation": "keep|donate|dispose",',
            '  "reasoning": "Detailed explanation",',
            '  "instructions": ["step", "by", "step", "instructions"],',
            '  "resources": ["helpful", "resources", "or", "contacts"],',
            '  "warnings": ["important", "safety", "warnings"]',
            "}",
        ]
    )


def disposal_guidelines_prompt(medicine_type: str, location: str) -> str:
    return "\n".join(
        [
            f"Provide detailed, safe disposal guidelines for {medicine_type or 'general'} medicines.",
            f"Location: {location or 'General'}",
            "",
            "Respond in JSON format:",
            "{",
            '  "guidelines": {',
            '    "general": ["important", "general", "rules"],',
            '    "safeDisposal": ["official", "disposal", "methods"],',
            '    "specificTypes": {',
            '      "controlled": ["instructions", "for", "controlled", "substances"],',
            '      "liquid": ["how", "to", "handle", "liquids"],',
            '      "inhalers": ["inhaler", "disposal"]',
            "    },",
            '    "emergency": ["trash", "disposal", "steps"]',
            "  },",
            '  "localResources": [',
            "    {",
            '      "name": "Resource Name",',
            '      "type": "Type of facility",',
            '      "description": "How they help",',
            '      "contact": "How to reach"',
            "    }",
            "  ]",
            "}",
        ]
    )
