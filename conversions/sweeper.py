"""
Forced terminal decisions for conversions stuck IN_PROGRESS.

A job submitted longer ago than the staleness window that has not produced a
terminal queue message since is decided by looking at its output prefix:
output present means FINISHED, nothing there means ERROR. Nothing stays
IN_PROGRESS forever.
"""
import logging

from django.core.cache import cache
from django.db.models import Exists, OuterRef
from django.db.models.functions import Coalesce
from django.utils import timezone

from .channels import PROCESS_TRANSCODE
from .config import OrchestratorConfig
from .models import ConversionJob, QueueMessage
from .reconciler import measure_output
from .results import SweepResult
from .s3 import ObjectStore, ObjectStoreError
from .status import TERMINAL_SIGNALS, TranscodeStatus

logger = logging.getLogger(__name__)

MAX_JOBS = 1000
STALE_MESSAGE = "No completion signal within the staleness window and no output found"


class StalenessSweeper:
    def __init__(self, config: OrchestratorConfig, output_store: ObjectStore, subtitles=None):
        self.config = config
        self.output = output_store
        self.subtitles = subtitles

    def stale_jobs(self, now=None):
        """IN_PROGRESS jobs submitted before the window with no terminal message since."""
        now = now or timezone.now()
        # Messages left over from an earlier attempt say nothing about this one.
        terminal_message = QueueMessage.objects.filter(
            content_id=OuterRef("content_id"),
            process=PROCESS_TRANSCODE,
            status__in=TERMINAL_SIGNALS,
            received_at__gte=OuterRef("started_at"),
        )
        return (
            ConversionJob.objects
            .filter(transcode_status=TranscodeStatus.IN_PROGRESS)
            .annotate(started_at=Coalesce("submitted_at", "created_at"))
            .filter(started_at__lt=now - self.config.staleness_window)
            .annotate(has_terminal=Exists(terminal_message))
            .filter(has_terminal=False)
            .order_by("started_at")[:MAX_JOBS]
        )

    def run(self, now=None) -> SweepResult:
        if not self.config.is_configured():
            logger.warning("Staleness sweep skipped: storage is not configured")
            return SweepResult(skipped_reason="storage is not configured")

        jobs = list(self.stale_jobs(now))
        result = SweepResult(selected=len(jobs))
        for job in jobs:
            try:
                size, has_mp4, count = measure_output(self.output, self.config, job.content_id)
            except ObjectStoreError as e:
                logger.warning("Staleness check of %s could not list output: %s", job.content_id, e)
                result.skipped += 1
                continue

            if count:
                if ConversionJob.advance(job.content_id, TranscodeStatus.FINISHED,
                                         expected=(TranscodeStatus.IN_PROGRESS,),
                                         output_size_bytes=size, has_mp4=has_mp4):
                    result.finished += 1
                    self._after_finish(job)
            elif ConversionJob.advance(job.content_id, TranscodeStatus.ERROR,
                                       expected=(TranscodeStatus.IN_PROGRESS,),
                                       error_message=STALE_MESSAGE):
                result.errored += 1

        if result.finished:
            cache.delete(self.config.listing_cache_key)
        logger.info(
            "Staleness sweep: selected=%d finished=%d errored=%d skipped=%d",
            result.selected, result.finished, result.errored, result.skipped,
        )
        return result

    def _after_finish(self, job: ConversionJob) -> None:
        if self.subtitles is None:
            return
        try:
            self.subtitles.request_auto_languages(job)
        except Exception:
            logger.exception("Automatic subtitle request for %s failed", job.content_id)

    def prune_messages(self, now=None) -> int:
        """Drop queue log entries older than twice the staleness window."""
        now = now or timezone.now()
        deleted, _ = QueueMessage.objects.filter(received_at__lt=now - 2 * self.config.staleness_window).delete()
        if deleted:
            logger.info("Pruned %d queue messages", deleted)
        return deleted
