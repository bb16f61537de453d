import uuid
from typing import Any, Dict, List, Optional

from src.core.exceptions import InvalidRequestError
from src.jobs.models import JobStatus
from src.jobs.store import SORT_FIELDS, SORT_ORDERS

SUPPORTED_LANGUAGES = (
    "en", "pt", "es", "fr", "de", "it", "ja", "ko", "zh",
    "ru", "ar", "hi", "tr", "nl", "sv", "da", "no", "fi",
)

LANGUAGE_NAMES = {
    "en": "English",
    "pt": "Portuguese",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ru": "Russian",
    "ar": "Arabic",
    "hi": "Hindi",
    "tr": "Turkish",
    "nl": "Dutch",
    "sv": "Swedish",
    "da": "Danish",
    "no": "Norwegian",
    "fi": "Finnish",
}


def supported_languages() -> List[Dict[str, str]]:
    """Return every accepted language code with its display name."""
    return [
        {"code": code, "name": LANGUAGE_NAMES.get(code, code.upper())}
        for code in SUPPORTED_LANGUAGES
    ]

DEFAULT_MAX_TEXT_LENGTH = 5000
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def validate_translation_request(
    source_text: Any,
    source_language: Any,
    target_language: Any,
    request_id: Optional[str] = None,
    max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
) -> None:
    """
    Reject a submission before anything is persisted.

    Every failing field is reported, not just the first one.

    Raises:
        InvalidRequestError: With one detail entry per problem.
    """
    errors: List[Dict[str, str]] = []

    if not isinstance(source_text, str) or not source_text.strip():
        errors.append(_error("sourceText", "Source text cannot be empty"))
    elif len(source_text) > max_text_length:
        errors.append(
            _error("sourceText", f"Source text cannot exceed {max_text_length} characters")
        )

    supported = ", ".join(SUPPORTED_LANGUAGES)
    if source_language not in SUPPORTED_LANGUAGES:
        errors.append(_error("sourceLanguage", f"Source language must be one of: {supported}"))
    if target_language not in SUPPORTED_LANGUAGES:
        errors.append(_error("targetLanguage", f"Target language must be one of: {supported}"))

    if source_language == target_language:
        errors.append(_error("targetLanguage", "Source and target languages must be different"))

    if request_id is not None and not _is_uuid(request_id):
        errors.append(_error("requestId", "Request ID must be a valid UUID"))

    if errors:
        raise InvalidRequestError("Validation error", details=errors)


def validate_list_params(
    status: Optional[str] = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
    sort_by: str = "created_at",
    sort_order: str = "DESC",
) -> Dict[str, Any]:
    """
    Normalise listing parameters.

    Returns:
        Dict with keys status (JobStatus | None), limit, offset, sort_by, sort_order.
    """
    errors: List[Dict[str, str]] = []

    parsed_status = None
    if status:
        try:
            parsed_status = JobStatus(status.lower())
        except ValueError:
            valid = ", ".join(s.value for s in JobStatus)
            errors.append(_error("status", f"Status must be one of: {valid}"))

    if not isinstance(limit, int) or not 1 <= limit <= MAX_LIST_LIMIT:
        errors.append(_error("limit", f"Limit must be between 1 and {MAX_LIST_LIMIT}"))
    if not isinstance(offset, int) or offset < 0:
        errors.append(_error("offset", "Offset must be zero or greater"))

    if sort_by not in SORT_FIELDS:
        errors.append(_error("sortBy", f"Sort field must be one of: {', '.join(SORT_FIELDS)}"))

    order = sort_order.upper() if isinstance(sort_order, str) else sort_order
    if order not in SORT_ORDERS:
        errors.append(_error("sortOrder", "Sort order must be ASC or DESC"))

    if errors:
        raise InvalidRequestError("Validation error", details=errors)

    return {
        "status": parsed_status,
        "limit": limit,
        "offset": offset,
        "sort_by": sort_by,
        "sort_order": order,
    }


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True
