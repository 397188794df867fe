"""
Subtitle generation requests and their reconciliation.

Lifecycle of a SubtitleRequest::

    PENDING -> PROCESSING -> COMPLETED
    PENDING | PROCESSING -> FAILED --(reopen, retry_count + 1)--> PENDING
    PENDING | PROCESSING --(stale cleanup, retry_count + 1)--> PENDING

COMPLETED is final. FAILED is final for the schedulers; only ``request()`` or
``retry_failed()`` (caller or operator initiated) reopen it. The hourly
cleanup recycles stale requests until the retry budget is spent; the
per-minute reconciliation only fails a request once its longer failure
timeout has passed.
"""
import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .config import OrchestratorConfig
from .languages import invalid_codes
from .models import ConversionJob, SubtitleRequest
from .pubsub import SubtitleTrigger
from .results import SubtitleReconcileResult, SubtitleRequestResult
from .s3 import ObjectStore
from .status import SUBTITLE_ACTIVE, SubtitleStatus, TranscodeStatus, normalize_subtitle_status

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Subtitle generation timed out"
TRIGGER_FAILED_MESSAGE = "Failed to trigger subtitle generation"


def _clean_languages(languages) -> list[str]:
    seen = []
    for lang in languages or []:
        code = str(lang).strip()
        if code and code not in seen:
            seen.append(code)
    return seen


class SubtitleOrchestrator:
    def __init__(self, config: OrchestratorConfig, trigger: SubtitleTrigger, output_store: ObjectStore):
        self.config = config
        self.trigger = trigger
        self.output = output_store

    # ---------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------
    @staticmethod
    def status(content_id: str) -> dict:
        """Language codes per status for one piece of content."""
        result = {"completed": [], "pending": [], "processing": [], "failed": []}
        for rec in SubtitleRequest.objects.filter(content_id=content_id):
            result[rec.status.lower()].append(rec.language_code)
        return result

    @staticmethod
    def refresh_legacy_field(content_id: str) -> None:
        codes = list(
            SubtitleRequest.objects.filter(content_id=content_id, status=SubtitleStatus.COMPLETED)
            .order_by("language_code")
            .values_list("language_code", flat=True)
        )
        if codes:
            ConversionJob.objects.filter(pk=content_id).update(subtitle_languages=",".join(codes))

    # ---------------------------------------------------------------
    # Requests
    # ---------------------------------------------------------------
    def request(self, content_id: str, languages) -> SubtitleRequestResult:
        job = ConversionJob.objects.filter(pk=content_id).first()
        if job is None:
            return SubtitleRequestResult.failure(f"conversion job not found: {content_id}")
        if job.transcode_status != TranscodeStatus.FINISHED:
            return SubtitleRequestResult.failure("subtitles need a finished conversion")

        codes = _clean_languages(languages)
        if not codes:
            return SubtitleRequestResult.failure("no languages requested")
        bad = invalid_codes(codes)
        if bad:
            # All or nothing: one bad code rejects the whole call.
            return SubtitleRequestResult.failure(f"unsupported language code: {', '.join(bad)}")

        existing = {r.language_code: r for r in SubtitleRequest.objects.filter(content_id=content_id)}
        result = SubtitleRequestResult()
        todo = []
        for code in codes:
            rec = existing.get(code)
            if rec is not None and rec.status != SubtitleStatus.FAILED:
                result.skipped.append(code)
            else:
                todo.append((code, rec))

        object_key = self.config.input_key(content_id)
        uri = self.config.rendition_uri(content_id, job.has_mp4)
        for code, rec in todo:
            rec = self._open(content_id, code, rec)
            if rec is None:
                # Someone else opened it between our read and our write.
                result.skipped.append(code)
                continue

            published = self.trigger.trigger(object_key, code, content_id, uri)
            if published["success"]:
                rec.mark_processing(published.get("message_id", ""))
                result.requested.append(code)
            else:
                error = published.get("error") or TRIGGER_FAILED_MESSAGE
                rec.mark_failed(error, expected=(SubtitleStatus.PENDING,))
                result.errors.append(f"{TRIGGER_FAILED_MESSAGE} ({code}): {error}")

        result.success = not result.errors
        logger.info(
            "Subtitles for %s: requested=%s skipped=%s errors=%d",
            content_id, result.requested, result.skipped, len(result.errors),
        )
        return result

    @staticmethod
    def _open(content_id: str, code: str, rec: SubtitleRequest | None) -> SubtitleRequest | None:
        """Reopen a FAILED request or create a new PENDING one."""
        if rec is not None:
            return rec if rec.reopen() else None
        try:
            with transaction.atomic():
                return SubtitleRequest.objects.create(content_id=content_id, language_code=code)
        except IntegrityError:
            return None

    def retry_failed(self, content_id: str, languages=()) -> SubtitleRequestResult:
        """Operator retry: request again every FAILED language (or the given ones)."""
        failed = SubtitleRequest.objects.filter(content_id=content_id, status=SubtitleStatus.FAILED)
        codes = _clean_languages(languages)
        if codes:
            failed = failed.filter(language_code__in=codes)
        retry = list(failed.values_list("language_code", flat=True))
        if not retry:
            return SubtitleRequestResult()
        return self.request(content_id, retry)

    def request_auto_languages(self, job: ConversionJob) -> SubtitleRequestResult | None:
        """Languages asked for at upload time, requested once the job is FINISHED."""
        if not job.auto_subtitle_languages:
            return None
        return self.request(job.content_id, job.auto_subtitle_languages)

    # ---------------------------------------------------------------
    # Transitions driven by queue messages
    # ---------------------------------------------------------------
    def apply_queue_signal(self, content_id: str, raw_status: str, languages, error: str = "") -> int:
        """Apply a subtitle status message; returns how many requests changed."""
        status = normalize_subtitle_status(raw_status)
        if status is None:
            return 0

        active = list(SubtitleRequest.objects.filter(content_id=content_id, status__in=SUBTITLE_ACTIVE)
                      .order_by("requested_at"))
        by_code = {r.language_code: r for r in SubtitleRequest.objects.filter(content_id=content_id)}
        codes = _clean_languages(languages)
        changed = 0

        if status == SubtitleStatus.COMPLETED:
            if not codes and active:
                codes = [active[0].language_code]
            for code in codes:
                rec = by_code.get(code)
                if rec is None:
                    rec, created = SubtitleRequest.objects.get_or_create(
                        content_id=content_id, language_code=code,
                        defaults={"status": SubtitleStatus.COMPLETED, "completed_at": timezone.now()},
                    )
                    if created:
                        changed += 1
                        continue
                if rec.mark_completed():
                    changed += 1
            if changed:
                self.refresh_legacy_field(content_id)
        elif status == SubtitleStatus.PROCESSING:
            targets = [by_code[c] for c in codes if c in by_code] if codes else active
            changed = sum(1 for rec in targets if rec.mark_processing(rec.message_id))
        else:
            targets = [by_code[c] for c in codes if c in by_code] if codes else active
            changed = sum(1 for rec in targets if rec.mark_failed(error or TRIGGER_FAILED_MESSAGE))
        return changed

    # ---------------------------------------------------------------
    # Scheduled reconciliation
    # ---------------------------------------------------------------
    def reconcile_pending(self, timeout: timedelta | None = None, now=None) -> SubtitleReconcileResult:
        """Look for the .vtt of every PENDING/PROCESSING request in the output bucket."""
        timeout = timeout if timeout is not None else self.config.subtitle_failure_timeout()
        now = now or timezone.now()
        cutoff = now - timeout
        result = SubtitleReconcileResult()

        for rec in list(SubtitleRequest.objects.filter(status__in=SUBTITLE_ACTIVE)):
            result.checked += 1
            key = self.config.subtitle_key(rec.content_id, rec.language_code)
            try:
                if self.output.exists(key):
                    if rec.mark_completed(now):
                        self.refresh_legacy_field(rec.content_id)
                        result.completed += 1
                    else:
                        result.still_pending += 1
                elif rec.requested_at < cutoff:
                    if rec.mark_failed(TIMEOUT_MESSAGE):
                        result.failed += 1
                    else:
                        result.still_pending += 1
                else:
                    result.still_pending += 1
            except Exception:
                # A check that could not be made never fails a request.
                logger.exception("Checking subtitle %s failed", key)
                result.still_pending += 1

        logger.info(
            "Subtitle reconciliation: checked=%d completed=%d failed=%d still_pending=%d",
            result.checked, result.completed, result.failed, result.still_pending,
        )
        return result

    def cleanup_stale(self, timeout: timedelta | None = None, now=None) -> int:
        """
        Time-based safety net: recycle stale requests to PENDING with one more
        retry, or fail them once the retry budget is spent.
        """
        timeout = timeout if timeout is not None else self.config.subtitle_timeout
        now = now or timezone.now()
        stale = list(SubtitleRequest.objects.filter(status__in=SUBTITLE_ACTIVE, requested_at__lt=now - timeout))

        count = 0
        for rec in stale:
            if rec.retry_count >= self.config.subtitle_max_retries:
                changed = rec.mark_failed(TIMEOUT_MESSAGE)
            else:
                changed = SubtitleRequest.objects.filter(
                    pk=rec.pk, status=rec.status, retry_count=rec.retry_count,
                ).update(status=SubtitleStatus.PENDING, retry_count=F("retry_count") + 1) == 1
            if changed:
                count += 1

        logger.info("Stale subtitle cleanup touched %d of %d requests", count, len(stale))
        return count
