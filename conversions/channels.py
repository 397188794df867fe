"""
External status channels.

A deployment has exactly one authoritative channel. Each implementation turns
its own wire format into ``Signal`` objects; the reconciler only sees signals.
"""
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Iterator, Protocol

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from .config import CHANNEL_HOSTED, CHANNEL_KEYVALUE, CHANNEL_QUEUE, OrchestratorConfig
from .s3 import boto_config, get_session

logger = logging.getLogger(__name__)

PROCESS_TRANSCODE = "mediaconvert"
PROCESS_SUBTITLE = "subtitle"

MAX_QUEUE_MESSAGES = 100


class ChannelError(Exception):
    """The channel could not be asked; the caller should try again next run."""


@dataclass
class Signal:
    content_id: str
    status: str
    process: str = PROCESS_TRANSCODE
    languages: list = field(default_factory=list)
    detail: dict = field(default_factory=dict)
    sent_at: datetime | None = None
    message_hash: str = ""
    receipt: str | None = None
    error: str = ""


class StatusChannel(Protocol):
    name: str

    def poll(self, content_ids: Iterable[str]) -> Iterator[Signal]:
        ...

    def ack(self, signal: Signal) -> None:
        ...


def _parse_timestamp(raw) -> datetime | None:
    if raw in (None, ""):
        return None
    try:
        if isinstance(raw, (int, float)) or str(raw).isdigit():
            return datetime.fromtimestamp(int(raw), tz=dt_timezone.utc)
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt_timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def subtitle_languages_from_payload(payload) -> list[str]:
    """
    The subtitle lambda reports languages as a list of codes, a list of
    ``{"code": ...}`` objects, ``{"target_lang": ...}`` or a bare string.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return [payload.strip()] if payload.strip() else []
    if isinstance(payload, str):
        return [payload.strip()] if payload.strip() else []
    if isinstance(payload, dict):
        lang = payload.get("target_lang") or payload.get("code")
        return [str(lang).strip()] if lang else []
    langs = []
    if isinstance(payload, list):
        for item in payload:
            if isinstance(item, dict) and item.get("code"):
                langs.append(str(item["code"]).strip())
            elif isinstance(item, str) and item.strip():
                langs.append(item.strip())
    return langs


class QueueStatusChannel:
    """SQS queue fed by the transcoder and subtitle lambdas."""

    name = CHANNEL_QUEUE

    def __init__(self, config: OrchestratorConfig, client=None):
        self.config = config
        self.queue_url = config.sqs_queue_url
        self.client = client or get_session(config).client("sqs", config=boto_config(config))

    def _receive_batch(self) -> list[dict]:
        resp = self.client.receive_message(
            QueueUrl=self.queue_url,
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
            MaxNumberOfMessages=10,
            VisibilityTimeout=60,
            WaitTimeSeconds=10,
        )
        return resp.get("Messages", []) or []

    def _belongs_to_us(self, body: dict, raw: dict) -> bool:
        objectkey = str(body.get("objectkey") or "")
        if "/" in objectkey:
            return objectkey.split("/", 1)[0] == self.config.bucket_key
        # Older messages carry no bucket key, only the site id attribute.
        siteid = raw.get("MessageAttributes", {}).get("siteid", {}).get("StringValue")
        return siteid == self.config.site_id

    def _to_signal(self, raw: dict) -> Signal:
        receipt = raw.get("ReceiptHandle")
        try:
            body = json.loads(raw.get("Body") or "{}")
        except ValueError:
            return Signal(content_id="", status="", receipt=receipt, error="unparseable body")
        if not isinstance(body, dict) or not body.get("objectkey"):
            return Signal(content_id="", status="", receipt=receipt, error="missing objectkey")
        if not self._belongs_to_us(body, raw):
            return Signal(content_id="", status="", receipt=receipt, error="foreign message")

        objectkey = str(body["objectkey"])
        content_id = objectkey.split("/", 1)[1] if "/" in objectkey else objectkey
        payload = body.get("message")
        encoded = json.dumps(payload, sort_keys=True, default=str)
        process = str(body.get("process") or PROCESS_TRANSCODE)
        return Signal(
            content_id=content_id,
            status=str(body.get("status") or ""),
            process=process,
            languages=subtitle_languages_from_payload(payload) if process == PROCESS_SUBTITLE else [],
            detail={"message": payload},
            sent_at=_parse_timestamp(body.get("timestamp")),
            message_hash=hashlib.md5(f"{objectkey}|{body.get('status')}|{encoded}".encode()).hexdigest(),
            receipt=receipt,
        )

    def poll(self, content_ids: Iterable[str] = ()) -> Iterator[Signal]:
        """Drain up to MAX_QUEUE_MESSAGES; the queue does not care which jobs are pending."""
        received = 0
        while received < MAX_QUEUE_MESSAGES:
            try:
                batch = self._receive_batch()
            except (BotoCoreError, ClientError) as e:
                raise ChannelError(f"receive_message failed: {e}") from e
            if not batch:
                break
            for raw in batch:
                received += 1
                yield self._to_signal(raw)

    def ack(self, signal: Signal) -> None:
        if not signal.receipt:
            return
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=signal.receipt)
        except (BotoCoreError, ClientError) as e:
            # The message reappears after its visibility timeout and is deduplicated then.
            logger.warning("Could not delete queue message for %s: %s", signal.content_id or "?", e)


class KeyValueStatusChannel:
    """DynamoDB table keyed by (contenthash, domainid)."""

    name = CHANNEL_KEYVALUE

    def __init__(self, config: OrchestratorConfig, table=None):
        self.config = config
        if table is None:
            resource = get_session(config).resource("dynamodb", config=boto_config(config))
            table = resource.Table(config.dynamodb_table_name)
        self.table = table

    def get(self, content_id: str) -> dict | None:
        try:
            resp = self.table.get_item(Key={"contenthash": content_id, "domainid": self.config.bucket_key})
        except (BotoCoreError, ClientError) as e:
            raise ChannelError(f"get_item failed for {content_id}: {e}") from e
        return resp.get("Item")

    def poll(self, content_ids: Iterable[str]) -> Iterator[Signal]:
        for content_id in content_ids:
            try:
                item = self.get(content_id)
            except ChannelError as e:
                yield Signal(content_id=content_id, status="", error=str(e))
                continue
            if item is None:
                continue
            yield Signal(
                content_id=content_id,
                status=str(item.get("status") or ""),
                detail={k: v for k, v in item.items() if k in ("error_message", "job_id")},
            )

    def ack(self, signal: Signal) -> None:
        return None


class HostedStatusChannel(KeyValueStatusChannel):
    """The same key-value lookups, answered by the hosted API instead of our own table."""

    name = CHANNEL_HOSTED

    def __init__(self, config: OrchestratorConfig, client: httpx.Client | None = None):
        self.config = config
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout)
        )

    def get(self, content_id: str) -> dict | None:
        try:
            response = self.client.post(
                self.config.hosted_api_url,
                data={
                    "license_key": self.config.hosted_license_key,
                    "action": "dynamodb_get_status",
                    "contenthash": content_id,
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ChannelError(f"hosted status lookup failed for {content_id}: {e}") from e
        except ValueError as e:
            raise ChannelError(f"hosted status lookup returned invalid JSON for {content_id}") from e
        if not isinstance(data, dict) or "error" in data or not data.get("status"):
            return None
        return data


def build_status_channel(config: OrchestratorConfig) -> StatusChannel | None:
    """Pick the authoritative channel once per run; None when nothing is configured."""
    kind = config.resolved_channel()
    if kind == CHANNEL_QUEUE and config.sqs_queue_url:
        return QueueStatusChannel(config)
    if kind == CHANNEL_KEYVALUE and config.dynamodb_table_name:
        return KeyValueStatusChannel(config)
    if kind == CHANNEL_HOSTED and config.hosted_api_url and config.hosted_license_key:
        return HostedStatusChannel(config)
    return None
