"""
Status reconciliation for conversion jobs.

Reads whatever the authoritative channel has to say and applies it to jobs
that are still ACCEPTED/IN_PROGRESS. Every write is a compare-and-set, so two
overlapping runs cannot move a job backwards or finish it twice.
"""
import logging

from django.core.cache import cache

from .channels import PROCESS_SUBTITLE, ChannelError, Signal, StatusChannel
from .config import OrchestratorConfig
from .models import ConversionJob, QueueMessage
from .results import ReconcileResult
from .s3 import ObjectStore, ObjectStoreError
from .status import TranscodeStatus, normalize_transcode_status
from .subtitles import SubtitleOrchestrator

logger = logging.getLogger(__name__)


def measure_output(output: ObjectStore, config: OrchestratorConfig, content_id: str) -> tuple[int, bool, int]:
    """(total size, has an mp4 rendition, object count) of a job's output prefix."""
    objects = output.list(config.output_prefix(content_id))
    size = sum(o.size for o in objects)
    has_mp4 = any("/mp4/" in o.key for o in objects)
    return size, has_mp4, len(objects)


class StatusReconciler:
    def __init__(self, config: OrchestratorConfig, channel: StatusChannel | None, output_store: ObjectStore,
                 subtitles: SubtitleOrchestrator | None = None):
        self.config = config
        self.channel = channel
        self.output = output_store
        self.subtitles = subtitles

    def run(self) -> ReconcileResult:
        if not self.config.is_configured():
            logger.warning("Reconciliation skipped: storage is not configured")
            return ReconcileResult(skipped_reason="storage is not configured")
        if self.channel is None:
            logger.warning("Reconciliation skipped: no status channel configured")
            return ReconcileResult(skipped_reason="no status channel configured")

        pending = list(ConversionJob.pending().values_list("content_id", flat=True))
        result = ReconcileResult(mode=self.channel.name, checked=len(pending))
        finished = []

        try:
            for signal in self.channel.poll(pending):
                if signal.receipt:
                    result.messages += 1
                try:
                    outcome = self._apply(signal)
                except Exception:
                    logger.exception("Applying %s signal for %s failed", self.channel.name, signal.content_id)
                    outcome = None
                finally:
                    self.channel.ack(signal)
                if outcome == TranscodeStatus.FINISHED:
                    result.finished += 1
                    finished.append(signal.content_id)
                elif outcome in (TranscodeStatus.ERROR, TranscodeStatus.NOT_FOUND):
                    result.errored += 1
        except ChannelError as e:
            # Whatever was applied before the failure stays applied.
            logger.warning("Status channel %s failed mid-run: %s", self.channel.name, e)

        result.unchanged = max(result.checked - result.finished - result.errored, 0)

        if finished:
            cache.delete(self.config.listing_cache_key)
            for content_id in finished:
                self._after_finish(content_id)

        logger.info(
            "Reconciliation via %s: checked=%d finished=%d errored=%d messages=%d",
            result.mode, result.checked, result.finished, result.errored, result.messages,
        )
        return result

    # ---------------------------------------------------------------
    def _record(self, signal: Signal) -> None:
        """Keep the queue's own log; the sweeper relies on it."""
        QueueMessage.objects.get_or_create(
            message_hash=signal.message_hash,
            defaults={
                "content_id": signal.content_id,
                "process": signal.process,
                "status": signal.status.upper(),
                "body": signal.detail,
                "sent_at": signal.sent_at,
            },
        )

    def _apply(self, signal: Signal):
        if signal.error:
            if signal.content_id:
                logger.warning("No status for %s this run: %s", signal.content_id, signal.error)
            else:
                logger.info("Discarding queue message: %s", signal.error)
            return None
        if signal.message_hash:
            self._record(signal)

        if signal.process == PROCESS_SUBTITLE:
            if self.subtitles is not None:
                error = str(signal.detail.get("message") or "")
                self.subtitles.apply_queue_signal(signal.content_id, signal.status, signal.languages, error)
            return None

        status = normalize_transcode_status(signal.status)
        if status is None:
            logger.info("Ignoring unknown status %r for %s", signal.status, signal.content_id)
            return None
        if status == TranscodeStatus.FINISHED:
            return status if self._finish(signal.content_id) else None
        if status in (TranscodeStatus.ERROR, TranscodeStatus.NOT_FOUND):
            detail = signal.detail.get("error_message") or signal.detail.get("message") or signal.status
            if ConversionJob.advance(signal.content_id, status, error_message=str(detail)[:4000]):
                logger.warning("Conversion %s reported %s: %s", signal.content_id, status, detail)
                return status
        # Progress reports leave the job as it is.
        return None

    def _finish(self, content_id: str) -> bool:
        try:
            size, has_mp4, _ = measure_output(self.output, self.config, content_id)
        except ObjectStoreError as e:
            logger.warning("Could not measure output of %s: %s", content_id, e)
            size, has_mp4 = None, False
        if ConversionJob.advance(content_id, TranscodeStatus.FINISHED, output_size_bytes=size, has_mp4=has_mp4):
            logger.info("Conversion %s finished (%s bytes)", content_id, size)
            return True
        return False

    def _after_finish(self, content_id: str) -> None:
        if self.subtitles is None:
            return
        job = ConversionJob.objects.filter(pk=content_id).first()
        if job is None:
            return
        try:
            self.subtitles.request_auto_languages(job)
        except Exception:
            logger.exception("Automatic subtitle request for %s failed", content_id)
