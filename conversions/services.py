"""
Entry points exposed to the rest of the system.

Each function wires the components from the current configuration and
returns a structured result; expected failures never raise.
"""
from .channels import build_status_channel
from .config import OrchestratorConfig
from .models import ConversionJob
from .pubsub import SubtitleTrigger
from .reconciler import StatusReconciler
from .results import SubtitleRequestResult
from .s3 import ObjectStore, get_s3_client
from .serializers import ConversionJobSerializer
from .submission import SubmissionService
from .subtitles import SubtitleOrchestrator
from .sweeper import StalenessSweeper


def get_config() -> OrchestratorConfig:
    return OrchestratorConfig.from_settings()


def _stores(config: OrchestratorConfig) -> tuple[ObjectStore, ObjectStore]:
    client = get_s3_client(config)
    return ObjectStore(config.input_bucket, client), ObjectStore(config.output_bucket, client)


def submission_service(config: OrchestratorConfig | None = None) -> SubmissionService:
    config = config or get_config()
    input_store, output_store = _stores(config)
    return SubmissionService(config, input_store, output_store)


def subtitle_orchestrator(config: OrchestratorConfig | None = None) -> SubtitleOrchestrator:
    config = config or get_config()
    _, output_store = _stores(config)
    return SubtitleOrchestrator(config, SubtitleTrigger(config), output_store)


def status_reconciler(config: OrchestratorConfig | None = None) -> StatusReconciler:
    config = config or get_config()
    _, output_store = _stores(config)
    subtitles = SubtitleOrchestrator(config, SubtitleTrigger(config), output_store)
    return StatusReconciler(config, build_status_channel(config), output_store, subtitles)


def staleness_sweeper(config: OrchestratorConfig | None = None) -> StalenessSweeper:
    config = config or get_config()
    _, output_store = _stores(config)
    subtitles = SubtitleOrchestrator(config, SubtitleTrigger(config), output_store)
    return StalenessSweeper(config, output_store, subtitles)


# -----------------------------------------------------
# Public operations
# -----------------------------------------------------
def submit_conversion(content_id: str):
    return submission_service().submit(content_id)


def retry_conversion(content_id: str):
    return submission_service().retry(content_id)


def purge_input_files():
    return submission_service().purge_inputs()


def get_job_status(content_id: str) -> dict | None:
    job = ConversionJob.objects.filter(pk=content_id).first()
    if job is None:
        return None
    return dict(ConversionJobSerializer(job).data)


def request_subtitles(content_id: str, languages) -> SubtitleRequestResult:
    return subtitle_orchestrator().request(content_id, languages)


def retry_subtitles(content_id: str, languages=()) -> SubtitleRequestResult:
    return subtitle_orchestrator().retry_failed(content_id, languages)


def get_subtitle_status(content_id: str) -> dict:
    return SubtitleOrchestrator.status(content_id)


def run_reconciliation():
    return status_reconciler().run()


def run_staleness_sweep():
    return staleness_sweeper().run()


def run_subtitle_reconciliation():
    return subtitle_orchestrator().reconcile_pending()


def cleanup_stale_subtitles(timeout=None) -> int:
    return subtitle_orchestrator().cleanup_stale(timeout)


def prune_queue_messages() -> int:
    return staleness_sweeper().prune_messages()
