from datetime import timedelta

from conversions.config import (
    CHANNEL_HOSTED,
    CHANNEL_KEYVALUE,
    CHANNEL_QUEUE,
    HOSTING_HOSTED,
    HOSTING_NONE,
    OrchestratorConfig,
)
from conversions.probe import mp4_output_resolution

from conftest import CID


def test_key_layout(config):
    assert config.input_key(CID) == f"videolesson/{CID}"
    assert config.output_prefix(CID) == f"videolesson/{CID}/"
    assert config.subtitle_key(CID, "fr") == f"videolesson/{CID}/subtitles/fr.vtt"


def test_rendition_uri_prefers_mp4(config):
    assert config.rendition_uri(CID, True) == f"s3://out-bucket/videolesson/{CID}/mp4/{CID}.mp4"
    assert config.rendition_uri(CID, False) == f"s3://out-bucket/videolesson/{CID}/conversions/{CID}.m3u8"


def test_exactly_one_authoritative_channel(config):
    assert config.resolved_channel() == CHANNEL_QUEUE
    assert config.with_overrides(dynamodb_table_name="status").resolved_channel() == CHANNEL_KEYVALUE
    assert config.with_overrides(dynamodb_table_name="status", status_channel=CHANNEL_QUEUE).resolved_channel() == CHANNEL_QUEUE
    assert config.with_overrides(hosting_mode=HOSTING_HOSTED).resolved_channel() == CHANNEL_HOSTED
    assert config.with_overrides(hosting_mode=HOSTING_NONE).resolved_channel() == ""
    assert OrchestratorConfig(input_bucket="a", output_bucket="b").resolved_channel() == ""


def test_capability_checks(config):
    assert config.is_configured()
    assert config.can_submit()
    assert not config.with_overrides(output_bucket="").is_configured()
    assert not config.with_overrides(hosting_mode=HOSTING_NONE).is_configured()

    hosted = config.with_overrides(hosting_mode=HOSTING_HOSTED, input_bucket="")
    assert not hosted.is_configured()
    hosted = hosted.with_overrides(hosted_api_url="https://api.example.com/status", hosted_license_key="lic")
    assert hosted.is_configured()
    assert not hosted.can_submit()


def test_from_settings_reads_django_settings(settings):
    settings.S3_INPUT_BUCKET = "uploads"
    settings.S3_OUTPUT_BUCKET = "renditions"
    settings.SUBTITLE_MAX_RETRIES = 5
    settings.CONVERSION_STALENESS_DAYS = 3
    cfg = OrchestratorConfig.from_settings()
    assert (cfg.input_bucket, cfg.output_bucket) == ("uploads", "renditions")
    assert cfg.subtitle_max_retries == 5
    assert cfg.staleness_window.days == 3


def test_mp4_resolution_is_capped_at_1080p_with_even_sides():
    assert mp4_output_resolution(3840, 2160) == "1920,1080"
    assert mp4_output_resolution(1000, 3000) == "360,1080"
    assert mp4_output_resolution(641, 479) == "642,480"
    assert mp4_output_resolution(None, 720) is None


def test_subtitle_failure_timeout_leaves_room_for_cleanup_retries(config):
    assert config.subtitle_failure_timeout() == timedelta(hours=4)
    assert config.with_overrides(subtitle_max_retries=0).subtitle_failure_timeout() == timedelta(hours=1)
    assert config.with_overrides(subtitle_fail_after=timedelta(hours=9)).subtitle_failure_timeout() == timedelta(hours=9)


def test_subtitle_failure_timeout_from_settings(settings):
    settings.SUBTITLE_TIMEOUT_SECONDS = 600
    settings.SUBTITLE_MAX_RETRIES = 2
    settings.SUBTITLE_FAIL_AFTER_SECONDS = 0
    assert OrchestratorConfig.from_settings().subtitle_failure_timeout() == timedelta(minutes=30)

    settings.SUBTITLE_FAIL_AFTER_SECONDS = 7200
    assert OrchestratorConfig.from_settings().subtitle_failure_timeout() == timedelta(hours=2)
