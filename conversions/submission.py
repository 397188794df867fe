"""
Submission of new content to the transcoder's input bucket.

At most one upload per content identifier: a submit either finds the content
already in the external store, or takes a short per-record lease, uploads,
and flips the job to IN_PROGRESS with a compare-and-set.
"""
import json
import logging

from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from . import results
from .config import OrchestratorConfig
from .identity import content_id_for_upload
from .models import ConversionJob
from .probe import mp4_output_resolution, probe_media
from .results import PurgeResult, SubmitResult
from .s3 import ObjectStore, ObjectStoreError
from .status import TRANSCODE_RESUBMITTABLE, TRANSCODE_TERMINAL, TranscodeStatus, UploadStatus
from .utils import display_name, local_path, release_local_copy, save_uploaded_file

logger = logging.getLogger(__name__)

SUBMIT_LEASE_SECONDS = 60 * 30


class SubmissionService:
    def __init__(self, config: OrchestratorConfig, input_store: ObjectStore, output_store: ObjectStore,
                 prober=probe_media):
        self.config = config
        self.input = input_store
        self.output = output_store
        self.prober = prober

    # ---------------------------------------------------------------
    # Registration of new content
    # ---------------------------------------------------------------
    def register_upload(self, djangofile, subtitle_languages=()) -> tuple[ConversionJob, bool]:
        """
        Stage an upload locally and make sure a ConversionJob exists for its bytes.
        Identical bytes uploaded twice map onto the same job.
        """
        content_id = content_id_for_upload(djangofile)
        rel_path = save_uploaded_file(djangofile)

        with transaction.atomic():
            job, created = ConversionJob.objects.get_or_create(
                content_id=content_id,
                defaults={
                    "name": display_name(djangofile.name),
                    "source_path": rel_path,
                    "auto_subtitle_languages": list(subtitle_languages),
                },
            )

        if created:
            job.metadata = self.prober(local_path(rel_path))
            job.save(update_fields=["metadata", "updated_at"])
            logger.info("Registered new content %s (%s)", content_id, job.name)
            return job, True

        # Keep the fresh copy only if the job may still need bytes to upload.
        needs_bytes = (
            job.upload_status != UploadStatus.UPLOADED
            or job.transcode_status in TRANSCODE_RESUBMITTABLE
        )
        if needs_bytes and not (job.source_path and local_path(job.source_path).exists()):
            ConversionJob.objects.filter(pk=content_id).update(source_path=rel_path, updated_at=timezone.now())
            job.source_path = rel_path
        else:
            release_local_copy(rel_path)
        logger.info("Upload of known content %s reuses the existing job", content_id)
        return job, False

    def get_conversion_settings(self, job: ConversionJob) -> dict:
        """Settings sent along with the input object as S3 metadata."""
        settings = {
            "siteid": self.config.site_id,
            "transcoder": "mediaconvert",
        }
        if job.metadata:
            settings["ffprobe"] = json.dumps(job.metadata, sort_keys=True)
        reso = mp4_output_resolution(job.metadata.get("width"), job.metadata.get("height"))
        if reso:
            settings["mp4_output_reso"] = reso
        return settings

    # ---------------------------------------------------------------
    # Submit / retry
    # ---------------------------------------------------------------
    def _mark_upload_error(self, content_id: str, message: str) -> None:
        ConversionJob.objects.filter(
            pk=content_id,
            upload_status__in=(UploadStatus.PENDING, UploadStatus.UPLOAD_ERROR),
        ).update(upload_status=UploadStatus.UPLOAD_ERROR, error_message=message[:4000], updated_at=timezone.now())

    def _mark_uploaded(self, job: ConversionJob) -> None:
        now = timezone.now()
        ConversionJob.objects.filter(pk=job.content_id).exclude(
            upload_status=UploadStatus.UPLOADED
        ).update(upload_status=UploadStatus.UPLOADED, error_message="", updated_at=now)
        ConversionJob.advance(
            job.content_id, TranscodeStatus.IN_PROGRESS, expected=(TranscodeStatus.ACCEPTED,), submitted_at=now
        )

    def _release(self, job: ConversionJob) -> None:
        if job.source_path and release_local_copy(job.source_path):
            ConversionJob.objects.filter(pk=job.content_id, source_path=job.source_path).update(source_path="")
            job.source_path = ""

    def _already_in_store(self, content_id: str) -> bool:
        return self.input.exists(self.config.input_key(content_id)) or self.output.has_any(
            self.config.output_prefix(content_id)
        )

    def submit(self, content_id: str) -> SubmitResult:
        job = ConversionJob.objects.filter(pk=content_id).first()
        if job is None:
            return SubmitResult(content_id, results.ERROR, "conversion job not found")

        if not self.config.can_submit():
            self._mark_upload_error(content_id, "object storage is not configured")
            logger.warning("Submission of %s skipped: object storage is not configured", content_id)
            return SubmitResult(content_id, results.ERROR, "object storage is not configured")

        lease = f"conversions:submit:{content_id}"
        if not cache.add(lease, timezone.now().isoformat(), SUBMIT_LEASE_SECONDS):
            return SubmitResult(content_id, results.ERROR, "submission already running for this content")
        try:
            return self._submit(job)
        finally:
            cache.delete(lease)

    def _submit(self, job: ConversionJob) -> SubmitResult:
        content_id = job.content_id

        if job.transcode_status not in TRANSCODE_RESUBMITTABLE:
            try:
                found = self._already_in_store(content_id)
            except ObjectStoreError as e:
                logger.warning("Could not check remote copy of %s: %s", content_id, e)
                self._mark_upload_error(content_id, f"could not check remote copy: {e}")
                return SubmitResult(content_id, results.ERROR, str(e))
            if found:
                self._mark_uploaded(job)
                self._release(job)
                logger.info("Content %s already in the input store, nothing uploaded", content_id)
                return SubmitResult(content_id, results.ALREADY_SUBMITTED)
            if job.transcode_status != TranscodeStatus.ACCEPTED:
                return SubmitResult(
                    content_id, results.ERROR,
                    f"job is {job.transcode_status} but has no remote copy; retry it explicitly",
                )
        elif not ConversionJob.advance(
            content_id, TranscodeStatus.ACCEPTED, expected=TRANSCODE_RESUBMITTABLE, completed_at=None,
            upload_status=UploadStatus.PENDING, error_message="", input_purged=False, output_size_bytes=None,
        ):
            return SubmitResult(content_id, results.ERROR, "job changed state while resubmitting")

        if not job.source_path or not local_path(job.source_path).exists():
            self._mark_upload_error(content_id, "local copy of the asset is missing")
            return SubmitResult(content_id, results.ERROR, "local copy of the asset is missing")

        try:
            self.input.put_file(
                local_path(job.source_path),
                self.config.input_key(content_id),
                metadata=self.get_conversion_settings(job),
            )
        except (ObjectStoreError + (OSError,)) as e:
            logger.warning("Upload of %s failed: %s", content_id, e)
            self._mark_upload_error(content_id, f"upload failed: {e}")
            return SubmitResult(content_id, results.ERROR, str(e))

        self._mark_uploaded(job)
        # Only now that the input write is confirmed may the local copy go.
        self._release(job)
        logger.info("Content %s uploaded for conversion", content_id)
        return SubmitResult(content_id, results.ACCEPTED)

    def retry(self, content_id: str) -> SubmitResult:
        """Operator-initiated retry of a failed upload or a terminally failed conversion."""
        job = ConversionJob.objects.filter(pk=content_id).first()
        if job is None:
            return SubmitResult(content_id, results.ERROR, "conversion job not found")
        if job.transcode_status in TRANSCODE_RESUBMITTABLE:
            return self.submit(content_id)
        if job.upload_status == UploadStatus.UPLOAD_ERROR:
            ConversionJob.objects.filter(pk=content_id, upload_status=UploadStatus.UPLOAD_ERROR).update(
                upload_status=UploadStatus.PENDING, error_message="", updated_at=timezone.now()
            )
            return self.submit(content_id)
        return SubmitResult(content_id, results.ERROR, f"nothing to retry, job is {job.transcode_status}")

    # ---------------------------------------------------------------
    # Input purge
    # ---------------------------------------------------------------
    def purge_inputs(self, limit: int = 1000) -> PurgeResult:
        """Delete input copies of jobs that reached a terminal state."""
        if not self.config.can_submit():
            return PurgeResult(skipped_reason="object storage is not configured")

        content_ids = list(
            ConversionJob.objects.filter(
                upload_status=UploadStatus.UPLOADED,
                transcode_status__in=TRANSCODE_TERMINAL,
                input_purged=False,
            ).values_list("content_id", flat=True)[:limit]
        )
        result = PurgeResult()
        if not content_ids:
            return result

        keys = {self.config.input_key(cid): cid for cid in content_ids}
        responses = self.input.delete(list(keys))
        for key, response in responses.items():
            content_id = keys[key]
            if response["success"]:
                ConversionJob.objects.filter(pk=content_id).update(input_purged=True, updated_at=timezone.now())
                result.purged.append(content_id)
            else:
                logger.warning("Input purge of %s failed: %s", content_id, "; ".join(response["errors"]))
                result.failed.append(content_id)
        return result
