import json
import logging

from botocore.exceptions import BotoCoreError, ClientError

from .config import OrchestratorConfig
from .s3 import boto_config, get_session

logger = logging.getLogger(__name__)


class SubtitleTrigger:
    """Publishes subtitle generation requests to the SNS topic the subtitle lambda listens on."""

    def __init__(self, config: OrchestratorConfig, client=None):
        self.config = config
        self.topic_arn = config.sns_topic_arn
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_session(self.config).client("sns", config=boto_config(self.config))
        return self._client

    def publish(self, topic_arn: str, payload: dict) -> dict:
        """Returns ``{"success": bool, "message_id": str, "error": str}``; never raises for AWS errors."""
        if not topic_arn:
            return {"success": False, "message_id": "", "error": "SNS topic ARN not configured"}
        try:
            resp = self.client.publish(TopicArn=topic_arn, Message=json.dumps(payload))
        except (BotoCoreError, ClientError) as e:
            logger.warning("SNS publish to %s failed: %s", topic_arn, e)
            return {"success": False, "message_id": "", "error": f"SNS publish failed: {e}"}
        return {"success": True, "message_id": resp.get("MessageId", ""), "error": ""}

    def trigger(self, object_key: str, language: str, filename: str, uri: str) -> dict:
        return self.publish(self.topic_arn, {
            "action": "subtitle",
            "object_key": object_key,
            "target_lang": language,
            "file_name": filename,
            "s3_uri": uri,
        })
