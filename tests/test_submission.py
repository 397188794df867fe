import pytest
from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile

from conversions import results
from conversions.models import ConversionJob
from conversions.status import TranscodeStatus, UploadStatus
from conversions.submission import SubmissionService

from conftest import CID

pytestmark = pytest.mark.django_db

PROBED = {"duration": 12.5, "width": 1280, "height": 720}


@pytest.fixture
def service(config, input_store, output_store):
    return SubmissionService(config, input_store, output_store, prober=lambda path: dict(PROBED))


def register(service, data=b"abc", name="lesson.mp4", **kwargs):
    return service.register_upload(SimpleUploadedFile(name, data), **kwargs)


def staged_files(media_root):
    uploads = media_root / "uploads"
    return sorted(uploads.iterdir()) if uploads.exists() else []


def test_register_creates_one_job_per_content(service, media_root):
    job, created = register(service, subtitle_languages=["fr"])
    assert created
    assert job.content_id == CID
    assert job.name == "lesson"
    assert job.metadata == PROBED
    assert job.auto_subtitle_languages == ["fr"]
    assert (media_root / job.source_path).exists()

    again, created = register(service, name="copy-of-lesson.mp4")
    assert not created
    assert again.content_id == CID
    assert ConversionJob.objects.count() == 1
    # the duplicate staged copy is not kept next to the original one
    assert len(staged_files(media_root)) == 1


def test_submit_uploads_once_then_releases_local_copy(service, input_store, media_root):
    job, _ = register(service)
    staged = media_root / job.source_path

    result = service.submit(CID)

    assert result.outcome == results.ACCEPTED
    assert [u["key"] for u in input_store.uploads] == [f"videolesson/{CID}"]
    metadata = input_store.uploads[0]["metadata"]
    assert metadata["siteid"] == "site-1"
    assert metadata["mp4_output_reso"] == "1280,720"
    assert "ffprobe" in metadata

    job.refresh_from_db()
    assert job.upload_status == UploadStatus.UPLOADED
    assert job.transcode_status == TranscodeStatus.IN_PROGRESS
    assert job.source_path == ""
    assert not staged.exists()


def test_submitting_twice_uploads_at_most_once(service, input_store):
    register(service)
    assert service.submit(CID).outcome == results.ACCEPTED
    assert service.submit(CID).outcome == results.ALREADY_SUBMITTED
    assert len(input_store.uploads) == 1


def test_content_already_in_input_store_is_not_uploaded(service, input_store, media_root):
    job, _ = register(service)
    input_store.add(f"videolesson/{CID}")

    result = service.submit(CID)

    assert result.outcome == results.ALREADY_SUBMITTED
    assert input_store.uploads == []
    job.refresh_from_db()
    assert job.upload_status == UploadStatus.UPLOADED
    assert job.transcode_status == TranscodeStatus.IN_PROGRESS
    assert staged_files(media_root) == []


def test_content_with_existing_output_is_not_uploaded(service, input_store, output_store):
    register(service)
    output_store.add(f"videolesson/{CID}/conversions/{CID}.m3u8")

    assert service.submit(CID).outcome == results.ALREADY_SUBMITTED
    assert input_store.uploads == []


def test_failed_upload_keeps_local_copy(service, input_store, media_root):
    job, _ = register(service)
    input_store.fail_keys.add(f"videolesson/{CID}")
    # exists() must still answer, only the write fails
    input_store.exists = lambda key: False

    result = service.submit(CID)

    assert result.outcome == results.ERROR
    job.refresh_from_db()
    assert job.upload_status == UploadStatus.UPLOAD_ERROR
    assert job.transcode_status == TranscodeStatus.ACCEPTED
    assert (media_root / job.source_path).exists()


def test_unanswerable_existence_check_never_uploads(service, input_store):
    register(service)
    input_store.fail = True

    result = service.submit(CID)

    assert result.outcome == results.ERROR
    assert input_store.uploads == []
    assert ConversionJob.objects.get(pk=CID).upload_status == UploadStatus.UPLOAD_ERROR


def test_unconfigured_storage_is_an_upload_error(config, input_store, output_store):
    service = SubmissionService(config.with_overrides(input_bucket=""), input_store, output_store,
                                prober=lambda path: {})
    register(service)

    result = service.submit(CID)

    assert result.outcome == results.ERROR
    assert "not configured" in result.error
    assert ConversionJob.objects.get(pk=CID).upload_status == UploadStatus.UPLOAD_ERROR


def test_concurrent_submission_is_refused(service, input_store):
    register(service)
    cache.add(f"conversions:submit:{CID}", "held", 60)

    result = service.submit(CID)

    assert result.outcome == results.ERROR
    assert input_store.uploads == []


def test_unknown_content_is_an_error(service):
    assert service.submit(CID).outcome == results.ERROR


def test_retry_resubmits_errored_conversion(service, input_store):
    register(service)
    ConversionJob.objects.filter(pk=CID).update(
        upload_status=UploadStatus.UPLOADED, transcode_status=TranscodeStatus.ERROR, error_message="boom",
    )

    result = service.retry(CID)

    assert result.outcome == results.ACCEPTED
    assert len(input_store.uploads) == 1
    job = ConversionJob.objects.get(pk=CID)
    assert job.transcode_status == TranscodeStatus.IN_PROGRESS
    assert job.error_message == ""
    assert job.completed_at is None


def test_retry_without_local_copy_fails_cleanly(service, make_job):
    make_job(transcode=TranscodeStatus.NOT_FOUND)

    result = service.retry(CID)

    assert result.outcome == results.ERROR
    job = ConversionJob.objects.get(pk=CID)
    assert job.upload_status == UploadStatus.UPLOAD_ERROR
    assert job.transcode_status == TranscodeStatus.ACCEPTED


def test_retry_of_running_job_does_nothing(service, make_job, input_store):
    make_job(transcode=TranscodeStatus.IN_PROGRESS)
    assert service.retry(CID).outcome == results.ERROR
    assert input_store.uploads == []


def test_purge_deletes_inputs_of_terminal_jobs(service, input_store, make_job):
    other = "b" * 40
    make_job(transcode=TranscodeStatus.FINISHED)
    make_job(other, transcode=TranscodeStatus.ERROR)
    make_job("c" * 40, transcode=TranscodeStatus.IN_PROGRESS)
    input_store.add(f"videolesson/{CID}")
    input_store.fail_keys.add(f"videolesson/{other}")

    result = service.purge_inputs()

    assert result.purged == [CID]
    assert result.failed == [other]
    assert ConversionJob.objects.get(pk=CID).input_purged
    assert not ConversionJob.objects.get(pk=other).input_purged
    assert f"videolesson/{CID}" not in input_store.objects
