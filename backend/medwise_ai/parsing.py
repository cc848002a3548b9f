from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```json\n?|```")


def clean_json_response(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def parse_json_object(raw_text: str) -> dict[str, Any] | None:
    text = clean_json_response(raw_text)
    if not text:
        return None
    try:
        payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    for start_idx in [idx for idx, char in enumerate(text) if char == "{"]:
        depth = 0
        for end_idx in range(start_idx, len(text)):
            char = text[end_idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            if depth == 0:
                candidate = text[start_idx : end_idx + 1]
                try:
                    payload = json.loads(candidate)
                    if isinstance(payload, dict):
                        return payload
                except json.JSONDecodeError:
                    break
    return None
