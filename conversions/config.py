"""
Orchestration configuration.

Components never read ``django.conf.settings`` themselves; they receive an
``OrchestratorConfig`` at construction, so tests can build one by hand.
"""
from dataclasses import dataclass, replace
from datetime import timedelta

from django.conf import settings

HOSTING_SELF = "self"
HOSTING_HOSTED = "hosted"
HOSTING_NONE = "none"

CHANNEL_QUEUE = "queue"
CHANNEL_KEYVALUE = "keyvalue"
CHANNEL_HOSTED = "hosted"


@dataclass(frozen=True)
class OrchestratorConfig:
    hosting_mode: str = HOSTING_SELF
    site_id: str = "transcode-tracker"

    s3_endpoint_url: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    input_bucket: str = ""
    output_bucket: str = ""
    bucket_key: str = "videolesson"

    status_channel: str = ""
    sqs_queue_url: str = ""
    dynamodb_table_name: str = ""
    sns_topic_arn: str = ""
    hosted_api_url: str = ""
    hosted_license_key: str = ""

    connect_timeout: int = 5
    read_timeout: int = 30

    staleness_window: timedelta = timedelta(days=7)
    subtitle_timeout: timedelta = timedelta(hours=1)
    subtitle_max_retries: int = 3
    subtitle_fail_after: timedelta | None = None
    listing_cache_key: str = "conversions:output-listing"

    @classmethod
    def from_settings(cls) -> "OrchestratorConfig":
        return cls(
            hosting_mode=settings.HOSTING_MODE,
            site_id=settings.SITE_ID_TAG,
            s3_endpoint_url=settings.S3_ENDPOINT_URL,
            s3_region=settings.S3_REGION,
            s3_access_key=settings.S3_ACCESS_KEY,
            s3_secret_key=settings.S3_SECRET_KEY,
            input_bucket=settings.S3_INPUT_BUCKET,
            output_bucket=settings.S3_OUTPUT_BUCKET,
            bucket_key=settings.S3_BUCKET_KEY or "videolesson",
            status_channel=settings.STATUS_CHANNEL,
            sqs_queue_url=settings.SQS_QUEUE_URL,
            dynamodb_table_name=settings.DYNAMODB_TABLE_NAME,
            sns_topic_arn=settings.SNS_TOPIC_ARN,
            hosted_api_url=settings.HOSTED_API_URL,
            hosted_license_key=settings.HOSTED_LICENSE_KEY,
            connect_timeout=settings.AWS_CONNECT_TIMEOUT,
            read_timeout=settings.AWS_READ_TIMEOUT,
            staleness_window=timedelta(days=settings.CONVERSION_STALENESS_DAYS),
            subtitle_timeout=timedelta(seconds=settings.SUBTITLE_TIMEOUT_SECONDS),
            subtitle_max_retries=settings.SUBTITLE_MAX_RETRIES,
            subtitle_fail_after=timedelta(seconds=settings.SUBTITLE_FAIL_AFTER_SECONDS) or None,
            listing_cache_key=settings.LISTING_CACHE_KEY,
        )

    def with_overrides(self, **changes) -> "OrchestratorConfig":
        return replace(self, **changes)

    def resolved_channel(self) -> str:
        """
        The single authoritative status channel for this deployment, or "".

        An explicit STATUS_CHANNEL wins; otherwise hosted deployments use the
        hosted API, and self-managed ones prefer the key-value table over the queue.
        """
        if self.hosting_mode == HOSTING_NONE:
            return ""
        if self.status_channel:
            return self.status_channel
        if self.hosting_mode == HOSTING_HOSTED:
            return CHANNEL_HOSTED
        if self.dynamodb_table_name:
            return CHANNEL_KEYVALUE
        if self.sqs_queue_url:
            return CHANNEL_QUEUE
        return ""

    def subtitle_failure_timeout(self) -> timedelta:
        """
        How long reconciliation waits for a .vtt before failing the request.

        Longer than the cleanup timeout, so the hourly cleanup gets to spend the
        retry budget first.
        """
        if self.subtitle_fail_after:
            return self.subtitle_fail_after
        return self.subtitle_timeout * (self.subtitle_max_retries + 1)

    def is_configured(self) -> bool:
        """Capability check consulted before any run touches the outside world."""
        if self.hosting_mode == HOSTING_NONE:
            return False
        if self.hosting_mode == HOSTING_HOSTED:
            return bool(self.hosted_api_url and self.hosted_license_key and self.output_bucket)
        return bool(self.input_bucket and self.output_bucket)

    def can_submit(self) -> bool:
        return self.is_configured() and bool(self.input_bucket)

    def input_key(self, content_id: str) -> str:
        return f"{self.bucket_key}/{content_id}"

    def output_prefix(self, content_id: str) -> str:
        return f"{self.bucket_key}/{content_id}/"

    def subtitle_key(self, content_id: str, language_code: str) -> str:
        return f"{self.bucket_key}/{content_id}/subtitles/{language_code}.vtt"

    def rendition_uri(self, content_id: str, has_mp4: bool) -> str:
        """S3 URI of the rendition the subtitle pipeline should listen to."""
        base = f"s3://{self.output_bucket}/{self.bucket_key}/{content_id}"
        if has_mp4:
            return f"{base}/mp4/{content_id}.mp4"
        return f"{base}/conversions/{content_id}.m3u8"
