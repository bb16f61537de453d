import json
import time
from dataclasses import dataclass, field, replace
from typing import Optional

DEFAULT_MAX_ATTEMPTS = 3

REQUIRED_FIELDS = ("requestId", "sourceText", "sourceLanguage", "targetLanguage")


@dataclass
class QueueMessage:
    """
    Wire-level translation job.

    IMPORTANT:
    - attempts lives in the body, never in broker metadata
    - max_attempts travels with the message so policy changes
      never orphan in-flight jobs
    """

    request_id: str
    source_text: str
    source_language: str
    target_language: str

    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    # Publish time of this copy of the message
    timestamp: float = field(default_factory=time.time)

    # Fixed at first publish, carried unchanged across retries
    expires_at: Optional[float] = None

    @property
    def dedup_key(self) -> str:
        return f"{self.request_id}:{self.attempts}"

    def next_attempt(self) -> "QueueMessage":
        """Copy for republishing after a failed attempt."""
        return replace(self, attempts=self.attempts + 1, timestamp=time.time())

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def to_json(self) -> str:
        """Serialize message to JSON for Redis storage."""
        return json.dumps(
            {
                "requestId": self.request_id,
                "sourceText": self.source_text,
                "sourceLanguage": self.source_language,
                "targetLanguage": self.target_language,
                "attempts": self.attempts,
                "maxAttempts": self.max_attempts,
                "timestamp": self.timestamp,
                "expiresAt": self.expires_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "QueueMessage":
        """
        Deserialize a message from Redis JSON.

        Raises:
            ValueError: If the payload is not a valid translation message.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Message is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Message must be a JSON object")

        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ValueError(f"Message missing required fields: {', '.join(missing)}")

        return cls(
            request_id=data["requestId"],
            source_text=data["sourceText"],
            source_language=data["sourceLanguage"],
            target_language=data["targetLanguage"],
            attempts=int(data.get("attempts") or 0),
            max_attempts=int(data.get("maxAttempts") or DEFAULT_MAX_ATTEMPTS),
            timestamp=float(data.get("timestamp") or time.time()),
            expires_at=data.get("expiresAt"),
        )
