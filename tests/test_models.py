import json
import time

import pytest

from src.jobs.models import JobStatus, TranslationJob, can_transition
from src.translation_queue.models import QueueMessage


def _message(**overrides):
    fields = dict(
        request_id="abc",
        source_text="hello",
        source_language="en",
        target_language="pt",
    )
    fields.update(overrides)
    return QueueMessage(**fields)


# ---------------------------
# QueueMessage
# ---------------------------

def test_wire_format_uses_camel_case_body_fields():
    data = json.loads(_message(attempts=2, max_attempts=5, expires_at=123.0).to_json())

    assert data["requestId"] == "abc"
    assert data["sourceText"] == "hello"
    assert data["attempts"] == 2
    assert data["maxAttempts"] == 5
    assert data["expiresAt"] == 123.0
    assert "timestamp" in data


def test_from_json_defaults_retry_fields():
    raw = json.dumps(
        {"requestId": "r1", "sourceText": "hi", "sourceLanguage": "en", "targetLanguage": "es"}
    )
    message = QueueMessage.from_json(raw)

    assert message.attempts == 0
    assert message.max_attempts == 3
    assert message.expires_at is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        json.dumps({"requestId": "r1", "sourceLanguage": "en", "targetLanguage": "es"}),
    ],
)
def test_from_json_rejects_malformed_payloads(raw):
    with pytest.raises(ValueError):
        QueueMessage.from_json(raw)


def test_next_attempt_increments_counter_and_keeps_expiry():
    message = _message(expires_at=999.0)
    retry = message.next_attempt()

    assert retry.attempts == 1
    assert retry.expires_at == 999.0
    assert retry.dedup_key == "abc:1"
    assert message.attempts == 0


def test_is_expired():
    assert _message(expires_at=time.time() - 1).is_expired()
    assert not _message(expires_at=time.time() + 60).is_expired()
    assert not _message().is_expired()


# ---------------------------
# TranslationJob
# ---------------------------

def test_lifecycle_is_forward_only():
    assert can_transition(JobStatus.QUEUED, JobStatus.PROCESSING)
    assert can_transition(JobStatus.QUEUED, JobStatus.FAILED)
    assert can_transition(JobStatus.PROCESSING, JobStatus.PROCESSING)
    assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)

    assert not can_transition(JobStatus.QUEUED, JobStatus.COMPLETED)
    assert not can_transition(JobStatus.PROCESSING, JobStatus.QUEUED)
    for terminal in (JobStatus.COMPLETED, JobStatus.FAILED):
        for target in JobStatus:
            assert not can_transition(terminal, target)


def test_with_status_keeps_result_fields_exclusive():
    job = TranslationJob("hello", "en", "pt")

    done = job.with_status(JobStatus.COMPLETED, translated_text="olá", error_message="ignored")
    assert done.translated_text == "olá"
    assert done.error_message is None

    failed = done.with_status(JobStatus.FAILED, translated_text="ignored", error_message="boom")
    assert failed.translated_text is None
    assert failed.error_message == "boom"


def test_hash_codec_preserves_job():
    job = TranslationJob("hello", "en", "pt").with_status(
        JobStatus.COMPLETED, translated_text="olá", attempts=2
    )

    restored = TranslationJob.from_hash(job.to_hash())

    assert restored == job


def test_public_view_omits_absent_results():
    view = TranslationJob("hello", "en", "pt").to_dict()

    assert view["status"] == "queued"
    assert "translatedText" not in view
    assert "errorMessage" not in view
