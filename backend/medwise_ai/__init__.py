from .expiry import apply_disposal_expiry_override, apply_strip_expiry_override, is_expired, parse_expiry_date
from .gateway import FAILURE_REASONS, AIResult, GeminiGateway, ProviderError
from .parsing import clean_json_response, parse_json_object
from .service import MedicalAssistant

__all__ = [
    "FAILURE_REASONS",
    "AIResult",
    "GeminiGateway",
    "MedicalAssistant",
    "ProviderError",
    "apply_disposal_expiry_override",
    "apply_strip_expiry_override",
    "clean_json_response",
    "is_expired",
    "parse_expiry_date",
    "parse_json_object",
]
