from datetime import timedelta

import pytest
from botocore.exceptions import ClientError
from django.core.cache import cache
from django.utils import timezone

from conversions.channels import ChannelError
from conversions.config import OrchestratorConfig
from conversions.models import ConversionJob
from conversions.s3 import StoredObject
from conversions.status import TranscodeStatus, UploadStatus

CID = "a9993e364706816aba3e25717850c26c9cd0d89d"
OTHER_CID = "da39a3ee5e6b4b0d3255bfef95601890afd80709"


def client_error(code="500", op="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, op)


class FakeObjectStore:
    """In-memory bucket with the ObjectStore surface; ``fail`` makes every call raise."""

    def __init__(self, bucket="bucket"):
        self.bucket = bucket
        self.objects = {}
        self.uploads = []
        self.deleted = []
        self.fail = False
        self.fail_keys = set()

    def _check(self, key=""):
        if self.fail or key in self.fail_keys:
            raise client_error()

    def add(self, key, size=1):
        self.objects[key] = size

    def put_file(self, local_path, key, metadata=None, content_type=None):
        self._check(key)
        with open(local_path, "rb") as f:
            self.objects[key] = len(f.read())
        self.uploads.append({"key": key, "metadata": dict(metadata or {})})

    def exists(self, key):
        self._check(key)
        return key in self.objects

    def list(self, prefix):
        self._check(prefix)
        return [StoredObject(key=k, size=v) for k, v in sorted(self.objects.items()) if k.startswith(prefix)]

    def has_any(self, prefix):
        return bool(self.list(prefix))

    def delete(self, keys):
        results = {}
        for key in keys:
            if self.fail or key in self.fail_keys:
                results[key] = {"success": False, "errors": ["boom"]}
                continue
            for k in [k for k in self.objects if k.startswith(key)]:
                del self.objects[k]
            self.deleted.append(key)
            results[key] = {"success": True, "errors": []}
        return results


class FakeTrigger:
    def __init__(self, fail_languages=()):
        self.fail_languages = set(fail_languages)
        self.calls = []

    def trigger(self, object_key, language, filename, uri):
        self.calls.append({"object_key": object_key, "language": language, "file_name": filename, "s3_uri": uri})
        if language in self.fail_languages:
            return {"success": False, "message_id": "", "error": "SNS publish failed: boom"}
        return {"success": True, "message_id": f"msg-{language}", "error": ""}


class FakeChannel:
    """Hands out pre-built signals and remembers what got acknowledged."""

    name = "fake"

    def __init__(self, signals=(), error_after=None):
        self.signals = list(signals)
        self.error_after = error_after
        self.polled = None
        self.acked = []

    def poll(self, content_ids):
        self.polled = list(content_ids)
        for i, signal in enumerate(self.signals):
            if self.error_after is not None and i >= self.error_after:
                raise ChannelError("channel went away")
            yield signal

    def ack(self, signal):
        self.acked.append(signal)


@pytest.fixture(autouse=True)
def _clean_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    root = tmp_path / "media"
    root.mkdir()
    settings.MEDIA_ROOT = root
    return root


@pytest.fixture
def config():
    return OrchestratorConfig(
        site_id="site-1",
        input_bucket="in-bucket",
        output_bucket="out-bucket",
        bucket_key="videolesson",
        sns_topic_arn="arn:aws:sns:us-east-1:123456789012:subtitles",
        sqs_queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/status",
    )


@pytest.fixture
def input_store():
    return FakeObjectStore("in-bucket")


@pytest.fixture
def output_store():
    return FakeObjectStore("out-bucket")


@pytest.fixture
def trigger():
    return FakeTrigger()


@pytest.fixture
def make_job(db):
    def _make(content_id=CID, *, upload=UploadStatus.UPLOADED, transcode=TranscodeStatus.IN_PROGRESS,
              age=timedelta(0), **fields):
        return ConversionJob.objects.create(
            content_id=content_id,
            upload_status=upload,
            transcode_status=transcode,
            created_at=timezone.now() - age,
            **fields,
        )
    return _make
