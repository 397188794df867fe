import logging
from datetime import timedelta

from celery import shared_task

from . import services
from .config import CHANNEL_QUEUE
from .models import ConversionJob
from .results import ReconcileResult

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def submit_conversion(self, content_id: str):
    result = services.submit_conversion(content_id)
    if not result.ok:
        logger.warning("Submission of %s: %s", content_id, result.error)
    return result.as_dict()


@shared_task
def run_reconciliation():
    config = services.get_config()
    # The queue has to be drained even when nothing is pending locally.
    if config.resolved_channel() != CHANNEL_QUEUE and not ConversionJob.pending().exists():
        logger.debug("Reconciliation: nothing pending")
        return ReconcileResult(mode=config.resolved_channel(), skipped_reason="nothing pending").as_dict()
    return services.run_reconciliation().as_dict()


@shared_task
def run_staleness_sweep():
    return services.run_staleness_sweep().as_dict()


@shared_task
def run_subtitle_reconciliation():
    return services.run_subtitle_reconciliation().as_dict()


@shared_task
def cleanup_stale_subtitles(timeout_seconds=None):
    """Beat runs this hourly; operators may pass a shorter timeout by hand."""
    timeout = timedelta(seconds=int(timeout_seconds)) if timeout_seconds is not None else None
    return {"cleaned": services.cleanup_stale_subtitles(timeout)}


@shared_task
def purge_input_files():
    return services.purge_input_files().as_dict()


@shared_task
def prune_queue_messages():
    return {"pruned": services.prune_queue_messages()}
