"""
Local status enums and the normalization of external status vocabularies.

Every status string that arrives from outside (queue messages, the key-value
status table, the hosted API) goes through one of the ``normalize_*``
functions before it is compared with anything stored locally.
"""
from django.db import models


class UploadStatus(models.TextChoices):
    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    UPLOAD_ERROR = "UPLOAD_ERROR"


class TranscodeStatus(models.TextChoices):
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


class SubtitleStatus(models.TextChoices):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TRANSCODE_ACTIVE = (TranscodeStatus.ACCEPTED, TranscodeStatus.IN_PROGRESS)
TRANSCODE_TERMINAL = (TranscodeStatus.FINISHED, TranscodeStatus.NOT_FOUND, TranscodeStatus.ERROR)
# A job in one of these states may be submitted again.
TRANSCODE_RESUBMITTABLE = (TranscodeStatus.NOT_FOUND, TranscodeStatus.ERROR)

SUBTITLE_ACTIVE = (SubtitleStatus.PENDING, SubtitleStatus.PROCESSING)

# Rekognition, Elastic Transcoder, MediaConvert and the subtitle lambda
# all speak slightly different dialects.
_TRANSCODE_VOCABULARY = {
    "SUCCEEDED": TranscodeStatus.FINISHED,
    "COMPLETE": TranscodeStatus.FINISHED,
    "COMPLETED": TranscodeStatus.FINISHED,
    "FINISHED": TranscodeStatus.FINISHED,
    "ERROR": TranscodeStatus.ERROR,
    "FAILED": TranscodeStatus.ERROR,
    "FAILURE": TranscodeStatus.ERROR,
    "CANCELED": TranscodeStatus.ERROR,
    "NOT_FOUND": TranscodeStatus.NOT_FOUND,
    "SUBMITTED": TranscodeStatus.IN_PROGRESS,
    "PROGRESSING": TranscodeStatus.IN_PROGRESS,
    "IN_PROGRESS": TranscodeStatus.IN_PROGRESS,
    "PROCESSING": TranscodeStatus.IN_PROGRESS,
}

_SUBTITLE_VOCABULARY = {
    "COMPLETE": SubtitleStatus.COMPLETED,
    "COMPLETED": SubtitleStatus.COMPLETED,
    "SUCCEEDED": SubtitleStatus.COMPLETED,
    "PROCESSING": SubtitleStatus.PROCESSING,
    "PROGRESSING": SubtitleStatus.PROCESSING,
    "ERROR": SubtitleStatus.FAILED,
    "FAILED": SubtitleStatus.FAILED,
}

# Queue statuses that count as "a terminal signal was observed".
TERMINAL_SIGNALS = ("SUCCEEDED", "COMPLETED", "COMPLETE", "ERROR")


def _clean(raw) -> str:
    if raw is None:
        return ""
    return str(raw).strip().upper().replace("-", "_").replace(" ", "_")


def normalize_transcode_status(raw) -> TranscodeStatus | None:
    """Map an external transcode status to the local enum, or None if unknown."""
    return _TRANSCODE_VOCABULARY.get(_clean(raw))


def normalize_subtitle_status(raw) -> SubtitleStatus | None:
    return _SUBTITLE_VOCABULARY.get(_clean(raw))
