import logging
from dataclasses import dataclass

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import OrchestratorConfig

logger = logging.getLogger(__name__)

ObjectStoreError = (BotoCoreError, ClientError)


def boto_config(config: OrchestratorConfig, **extra) -> BotoConfig:
    """Client config with bounded timeouts; a hung AWS call must not stall a whole run."""
    return BotoConfig(
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        retries={"max_attempts": 3, "mode": "standard"},
        **extra,
    )


def get_session(config: OrchestratorConfig):
    return boto3.session.Session(
        aws_access_key_id=config.s3_access_key,
        aws_secret_access_key=config.s3_secret_key,
        region_name=config.s3_region,
    )


def get_s3_client(config: OrchestratorConfig):
    """
    SDK client for server-side upload, listing and deletes.
    """
    return get_session(config).client(
        "s3",
        endpoint_url=config.s3_endpoint_url,  # e.g. http://127.0.0.1:9000 for MinIO
        config=boto_config(
            config,
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


@dataclass
class StoredObject:
    key: str
    size: int


class ObjectStore:
    """One bucket, seen through the handful of calls the orchestrator needs."""

    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self.client = client

    def put_file(self, local_path, key: str, metadata: dict | None = None, content_type: str | None = None):
        """
        Upload a single file with optional metadata and Content-Type.
        """
        extra = {}
        if metadata:
            extra["Metadata"] = {k: str(v) for k, v in metadata.items()}
        if content_type:
            extra["ContentType"] = content_type
        self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)

    def exists(self, key: str) -> bool:
        """
        HEAD the object. A 404 means absent; any other failure is raised so the
        caller can tell "not there" apart from "could not ask".
        """
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def list(self, prefix: str) -> list[StoredObject]:
        """All objects under ``prefix``, following continuation tokens."""
        objects = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []) or []:
                objects.append(StoredObject(key=obj["Key"], size=int(obj.get("Size", 0))))
        return objects

    def has_any(self, prefix: str) -> bool:
        resp = self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        return bool(resp.get("Contents"))

    def delete(self, keys) -> dict:
        """
        Delete every object under each key (a key may be a prefix).

        Returns ``{key: {"success": bool, "errors": [...]}}``; one failing key
        does not stop the others.
        """
        results = {}
        for key in keys:
            try:
                found = self.list(key)
                if not found:
                    results[key] = {"success": True, "errors": []}
                    continue
                errors = []
                # DeleteObjects accepts at most 1000 keys per call.
                for i in range(0, len(found), 1000):
                    batch = [{"Key": o.key} for o in found[i:i + 1000]]
                    resp = self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch})
                    for err in resp.get("Errors", []) or []:
                        errors.append(f"Object: {err.get('Key')}, Error: {err.get('Message')}")
                results[key] = {"success": not errors, "errors": errors}
            except ObjectStoreError as e:
                logger.warning("Deleting %s from %s failed: %s", key, self.bucket, e)
                results[key] = {"success": False, "errors": [str(e)]}
        return results
