from django.db import models
from django.utils import timezone

from .status import (
    SUBTITLE_ACTIVE,
    TRANSCODE_ACTIVE,
    SubtitleStatus,
    TranscodeStatus,
    UploadStatus,
)


class ConversionJob(models.Model):
    """One remote transcoding job per content identifier."""

    content_id = models.CharField(max_length=40, primary_key=True)   # sha1 of the asset bytes
    name = models.CharField(max_length=255, blank=True, default="")
    source_path = models.CharField(max_length=512, blank=True, default="")  # relative to MEDIA_ROOT
    upload_status = models.CharField(
        max_length=16, choices=UploadStatus.choices, default=UploadStatus.PENDING, db_index=True
    )
    transcode_status = models.CharField(
        max_length=16, choices=TranscodeStatus.choices, default=TranscodeStatus.ACCEPTED, db_index=True
    )
    output_size_bytes = models.BigIntegerField(null=True, blank=True)
    has_mp4 = models.BooleanField(default=False)
    input_purged = models.BooleanField(default=False)
    metadata = models.JSONField(default=dict, blank=True)   # {duration, width, height} from probing
    # Legacy aggregate kept for older readers: "en,fr" of completed subtitle languages.
    subtitle_languages = models.CharField(max_length=512, blank=True, default="")
    auto_subtitle_languages = models.JSONField(default=list, blank=True)
    error_message = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    submitted_at = models.DateTimeField(null=True, blank=True, db_index=True)   # last move to IN_PROGRESS
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.content_id} ({self.transcode_status})"

    @classmethod
    def pending(cls):
        """Jobs that reached the input bucket and still wait for a terminal signal."""
        return cls.objects.filter(
            upload_status=UploadStatus.UPLOADED,
            transcode_status__in=TRANSCODE_ACTIVE,
        )

    @classmethod
    def advance(cls, content_id: str, to_status: str, *, expected=TRANSCODE_ACTIVE, **fields) -> bool:
        """
        Compare-and-set transition of ``transcode_status``.

        The row is written only while its current status is one of ``expected``;
        returns False when another run got there first. Leaving ACCEPTED also
        requires the upload to have been confirmed.
        """
        values = {"transcode_status": to_status, "updated_at": timezone.now(), **fields}
        if to_status not in TRANSCODE_ACTIVE and "completed_at" not in values:
            values["completed_at"] = timezone.now()
        rows = cls.objects.filter(pk=content_id, transcode_status__in=expected)
        if to_status != TranscodeStatus.ACCEPTED:
            rows = rows.filter(upload_status=UploadStatus.UPLOADED)
        return rows.update(**values) == 1


class SubtitleRequest(models.Model):
    """Subtitle generation request for one (content, language) pair."""

    content_id = models.CharField(max_length=40, db_index=True)
    language_code = models.CharField(max_length=16)
    status = models.CharField(
        max_length=16, choices=SubtitleStatus.choices, default=SubtitleStatus.PENDING, db_index=True
    )
    requested_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)
    error_message = models.TextField(blank=True, default="")
    message_id = models.CharField(max_length=128, blank=True, default="")

    class Meta:
        ordering = ["content_id", "language_code"]
        constraints = [
            models.UniqueConstraint(fields=["content_id", "language_code"], name="uniq_subtitle_per_language"),
        ]

    def __str__(self):
        return f"{self.content_id}/{self.language_code} ({self.status})"

    def _transition(self, expected, **values) -> bool:
        updated = SubtitleRequest.objects.filter(pk=self.pk, status__in=expected).update(**values)
        if updated:
            for field, value in values.items():
                setattr(self, field, value)
        return updated == 1

    def reopen(self, now=None) -> bool:
        """FAILED -> PENDING; a retry of a request that failed."""
        return self._transition(
            (SubtitleStatus.FAILED,),
            status=SubtitleStatus.PENDING,
            requested_at=now or timezone.now(),
            retry_count=self.retry_count + 1,
            error_message="",
            message_id="",
            completed_at=None,
        )

    def mark_processing(self, message_id: str = "") -> bool:
        return self._transition(
            (SubtitleStatus.PENDING,),
            status=SubtitleStatus.PROCESSING,
            message_id=message_id or "",
        )

    def mark_completed(self, now=None) -> bool:
        return self._transition(
            SUBTITLE_ACTIVE,
            status=SubtitleStatus.COMPLETED,
            completed_at=now or timezone.now(),
            error_message="",
        )

    def mark_failed(self, error_message: str, *, expected=SUBTITLE_ACTIVE) -> bool:
        return self._transition(expected, status=SubtitleStatus.FAILED, error_message=error_message)


class QueueMessage(models.Model):
    """Every status message drained from the queue channel, recorded once."""

    message_hash = models.CharField(max_length=32, unique=True)
    content_id = models.CharField(max_length=40, db_index=True)
    process = models.CharField(max_length=32)    # "mediaconvert" | "subtitle"
    status = models.CharField(max_length=32)
    body = models.JSONField(default=dict, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    received_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["content_id", "status"], name="conv_qmsg_content_status_idx"),
        ]

    def __str__(self):
        return f"{self.process}:{self.content_id}:{self.status}"
