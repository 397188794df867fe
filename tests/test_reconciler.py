import pytest
from django.core.cache import cache

from conversions.channels import PROCESS_SUBTITLE, Signal
from conversions.models import ConversionJob, QueueMessage, SubtitleRequest
from conversions.reconciler import StatusReconciler
from conversions.status import SubtitleStatus, TranscodeStatus, UploadStatus
from conversions.subtitles import SubtitleOrchestrator

from conftest import CID, OTHER_CID, FakeChannel

pytestmark = pytest.mark.django_db


@pytest.fixture
def build(config, output_store, trigger):
    def _build(signals=(), **kwargs):
        channel = FakeChannel(signals, **kwargs)
        subtitles = SubtitleOrchestrator(config, trigger, output_store)
        return StatusReconciler(config, channel, output_store, subtitles), channel
    return _build


def test_finished_signal_records_output(build, make_job, output_store, config):
    make_job()
    output_store.add(f"videolesson/{CID}/conversions/{CID}.m3u8", 100)
    output_store.add(f"videolesson/{CID}/mp4/{CID}.mp4", 900)
    cache.set(config.listing_cache_key, ["stale"])
    reconciler, channel = build([Signal(CID, "SUCCEEDED")])

    result = reconciler.run()

    assert (result.checked, result.finished, result.errored, result.unchanged) == (1, 1, 0, 0)
    assert channel.polled == [CID]
    job = ConversionJob.objects.get(pk=CID)
    assert job.transcode_status == TranscodeStatus.FINISHED
    assert job.output_size_bytes == 1000
    assert job.has_mp4
    assert job.completed_at is not None
    assert cache.get(config.listing_cache_key) is None


def test_error_signal_is_terminal(build, make_job):
    make_job()
    reconciler, _ = build([Signal(CID, "FAILED", detail={"error_message": "codec not supported"})])

    result = reconciler.run()

    assert result.errored == 1
    job = ConversionJob.objects.get(pk=CID)
    assert job.transcode_status == TranscodeStatus.ERROR
    assert job.error_message == "codec not supported"


def test_progress_and_unknown_statuses_change_nothing(build, make_job):
    make_job()
    make_job(OTHER_CID)
    reconciler, _ = build([Signal(CID, "PROGRESSING"), Signal(OTHER_CID, "SOMETHING_NEW")])

    result = reconciler.run()

    assert (result.checked, result.unchanged) == (2, 2)
    assert set(ConversionJob.objects.values_list("transcode_status", flat=True)) == {TranscodeStatus.IN_PROGRESS}


def test_terminal_status_never_moves(build, make_job):
    make_job(transcode=TranscodeStatus.FINISHED)
    reconciler, _ = build([Signal(CID, "ERROR"), Signal(CID, "PROGRESSING")])

    result = reconciler.run()

    assert result.errored == 0
    assert ConversionJob.objects.get(pk=CID).transcode_status == TranscodeStatus.FINISHED


def test_unconfirmed_upload_is_not_finished(build, make_job):
    make_job(upload=UploadStatus.PENDING, transcode=TranscodeStatus.ACCEPTED)
    reconciler, channel = build([Signal(CID, "COMPLETE")])

    reconciler.run()

    assert channel.polled == []
    assert ConversionJob.objects.get(pk=CID).transcode_status == TranscodeStatus.ACCEPTED


def test_every_signal_is_acknowledged(build, make_job):
    make_job()
    signals = [
        Signal("", "", receipt="foreign", error="foreign message"),
        Signal(CID, "COMPLETE", receipt="mine", message_hash="h1"),
    ]
    reconciler, channel = build(signals)

    result = reconciler.run()

    assert [s.receipt for s in channel.acked] == ["foreign", "mine"]
    assert result.messages == 2


def test_queue_messages_are_logged_once(build, make_job):
    make_job()
    signal = Signal(CID, "COMPLETE", receipt="r", message_hash="abc123", detail={"message": {}})
    reconciler, _ = build([signal, signal])

    reconciler.run()

    assert QueueMessage.objects.filter(content_id=CID).count() == 1
    assert QueueMessage.objects.get().status == "COMPLETE"


def test_channel_failure_keeps_what_was_applied(build, make_job):
    make_job()
    make_job(OTHER_CID)
    reconciler, _ = build([Signal(CID, "COMPLETE"), Signal(OTHER_CID, "COMPLETE")], error_after=1)

    result = reconciler.run()

    assert result.finished == 1
    assert ConversionJob.objects.get(pk=CID).transcode_status == TranscodeStatus.FINISHED
    assert ConversionJob.objects.get(pk=OTHER_CID).transcode_status == TranscodeStatus.IN_PROGRESS


def test_unlistable_output_still_finishes(build, make_job, output_store):
    make_job()
    output_store.fail = True
    reconciler, _ = build([Signal(CID, "COMPLETE")])

    reconciler.run()

    job = ConversionJob.objects.get(pk=CID)
    assert job.transcode_status == TranscodeStatus.FINISHED
    assert job.output_size_bytes is None


def test_no_channel_is_a_logged_noop(config, output_store, make_job):
    make_job()
    result = StatusReconciler(config, None, output_store).run()
    assert result.skipped_reason
    assert ConversionJob.objects.get(pk=CID).transcode_status == TranscodeStatus.IN_PROGRESS


def test_finished_job_requests_its_auto_subtitles(build, make_job, trigger):
    make_job(auto_subtitle_languages=["fr"])
    reconciler, _ = build([Signal(CID, "COMPLETE")])

    reconciler.run()

    assert [c["language"] for c in trigger.calls] == ["fr"]
    assert SubtitleRequest.objects.get(content_id=CID, language_code="fr").status == SubtitleStatus.PROCESSING


def test_subtitle_signal_completes_request(build, make_job):
    make_job(transcode=TranscodeStatus.FINISHED)
    SubtitleRequest.objects.create(content_id=CID, language_code="fr", status=SubtitleStatus.PROCESSING)
    signal = Signal(CID, "COMPLETED", process=PROCESS_SUBTITLE, languages=["fr"], message_hash="s1")
    reconciler, _ = build([signal])

    reconciler.run()

    assert SubtitleRequest.objects.get(content_id=CID, language_code="fr").status == SubtitleStatus.COMPLETED
    assert ConversionJob.objects.get(pk=CID).subtitle_languages == "fr"
