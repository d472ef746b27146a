# aviator_sim/infrastructure/persistence/s3_document_store.py
import json
import logging
from typing import Dict, Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StoreUnavailableError


class S3DocumentStore:
    """
    Remote document store: every key is a JSON object under ``prefix``.
    """
    def __init__(self, bucket: str, region: str, prefix: str = "aviator", client=None):
        self.logger = logging.getLogger("infrastructure.persistence.s3")
        self.bucket = bucket
        self.prefix = prefix.strip("/")

        # 运行在带 IAM Role 的机器上时不需要显式传 creds
        self.client = client or boto3.client("s3", region_name=region)

    def _make_key(self, key: str) -> str:
        key = key.lstrip("/")
        object_key = f"{key}.json"
        return f"{self.prefix}/{object_key}" if self.prefix else object_key

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        object_key = self._make_key(key)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=object_key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            self.logger.error(f"S3 get failed for {object_key}: {e}")
            raise StoreUnavailableError("s3", key, e) from e
        except BotoCoreError as e:
            self.logger.error(f"S3 get failed for {object_key}: {e}")
            raise StoreUnavailableError("s3", key, e) from e

        try:
            return json.loads(response["Body"].read().decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise StoreUnavailableError("s3", key, e) from e

    def put(self, key: str, document: Dict[str, Any]) -> None:
        object_key = self._make_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=json.dumps(document, ensure_ascii=False).encode("utf-8"),
                ContentType="application/json"
            )
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"S3 put failed for {object_key}: {e}")
            raise StoreUnavailableError("s3", key, e) from e
        self.logger.debug(f"Uploaded document {key} to s3://{self.bucket}/{object_key}")
