import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Forward-only lifecycle. QUEUED -> FAILED is reserved for user cancellation;
# PROCESSING -> PROCESSING happens on every retried attempt.
ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TranslationJob:
    """
    Durable record of one translation request.

    - request_id is the idempotency key for the whole pipeline
    - translated_text is set only when COMPLETED
    - error_message is set only when FAILED
    """

    source_text: str
    source_language: str
    target_language: str

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.QUEUED

    translated_text: Optional[str] = None
    error_message: Optional[str] = None

    # Processing attempts started so far
    attempts: int = 0

    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = JobStatus(self.status)
        if self.updated_at is None:
            self.updated_at = self.created_at

    def with_status(
        self,
        status: JobStatus,
        translated_text: Optional[str] = None,
        error_message: Optional[str] = None,
        attempts: Optional[int] = None,
        updated_at: Optional[datetime] = None,
    ) -> "TranslationJob":
        """Return a copy moved to `status`, keeping the result fields exclusive."""
        return replace(
            self,
            status=status,
            translated_text=translated_text if status == JobStatus.COMPLETED else None,
            error_message=error_message if status == JobStatus.FAILED else None,
            attempts=self.attempts if attempts is None else attempts,
            updated_at=updated_at or utcnow(),
        )

    # ------------------------------------------------------------------
    # Redis hash codec
    # ------------------------------------------------------------------

    def to_hash(self) -> Dict[str, str]:
        data = {
            "requestId": self.request_id,
            "sourceText": self.source_text,
            "sourceLanguage": self.source_language,
            "targetLanguage": self.target_language,
            "status": self.status.value,
            "attempts": str(self.attempts),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.translated_text is not None:
            data["translatedText"] = self.translated_text
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_hash(cls, raw: Dict[str, str]) -> "TranslationJob":
        return cls(
            request_id=raw["requestId"],
            source_text=raw["sourceText"],
            source_language=raw["sourceLanguage"],
            target_language=raw["targetLanguage"],
            status=JobStatus(raw["status"]),
            translated_text=raw.get("translatedText"),
            error_message=raw.get("errorMessage"),
            attempts=int(raw.get("attempts", 0)),
            created_at=datetime.fromisoformat(raw["createdAt"]),
            updated_at=datetime.fromisoformat(raw["updatedAt"]),
        )

    # ------------------------------------------------------------------
    # Public view
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Shape returned by status queries and listings."""
        data: Dict[str, Any] = {
            "requestId": self.request_id,
            "status": self.status.value,
            "sourceText": self.source_text,
            "sourceLanguage": self.source_language,
            "targetLanguage": self.target_language,
            "attempts": self.attempts,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.translated_text is not None:
            data["translatedText"] = self.translated_text
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data
