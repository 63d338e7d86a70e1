"""
Durable storage for the ledger workbook snapshot.

The snapshot (the whole xlsx file) is the unit of consistency: it is always
read and written in full.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from ...core.errors import LedgerPersistenceError

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class LedgerSnapshotStoreBase(ABC):

    @property
    @abstractmethod
    def location(self) -> str:
        pass

    @abstractmethod
    def load(self) -> bytes | None:
        """
        Fetch the current snapshot.

        Returns:
            Workbook bytes, or None if no snapshot exists yet

        Raises:
            LedgerPersistenceError: On any other failure
        """
        pass

    @abstractmethod
    def save(self, data: bytes) -> str:
        """
        Overwrite the snapshot.

        Returns:
            Location of the saved snapshot

        Raises:
            LedgerPersistenceError: If the write fails
        """
        pass


class S3LedgerSnapshotStore(LedgerSnapshotStoreBase):
    """
    Ledger snapshot kept as a single S3 object.

    Credentials come from the standard AWS chain (environment variables,
    shared profile or instance role).
    """

    MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}

    def __init__(self, bucket: str, key: str, region: str = "sa-east-1", client=None):
        if not bucket:
            raise ValueError("S3 bucket name is required for the ledger snapshot store")
        self.bucket = bucket
        self.key = key
        self.region = region
        self.s3 = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(retries={"max_attempts": 3, "mode": "adaptive"})
        )
        logger.info(f"S3 ledger store initialized with bucket: {bucket}, region: {region}")

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def load(self) -> bytes | None:
        logger.info(f"Downloading ledger from S3: {self.bucket}/{self.key}")
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
            return response["Body"].read()
        except ClientError as e:
            error_code = str(e.response.get("Error", {}).get("Code", ""))
            if error_code in self.MISSING_KEY_CODES:
                logger.info("Ledger not found in S3, a new workbook will be created")
                return None
            raise LedgerPersistenceError("fetch", str(e)) from e
        except BotoCoreError as e:
            raise LedgerPersistenceError("fetch", str(e)) from e

    def save(self, data: bytes) -> str:
        logger.info(f"Uploading ledger to S3: {self.bucket}/{self.key}", size=len(data))
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=data,
                ContentType=XLSX_CONTENT_TYPE
            )
        except (ClientError, BotoCoreError) as e:
            raise LedgerPersistenceError("save", str(e)) from e
        return self.location


class FileLedgerSnapshotStore(LedgerSnapshotStoreBase):
    """Ledger snapshot on the local filesystem (development and tests)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    @property
    def location(self) -> str:
        return str(self.path)

    def load(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            logger.info(f"Ledger file not found at {self.path}, a new workbook will be created")
            return None
        except OSError as e:
            raise LedgerPersistenceError("fetch", str(e)) from e

    def save(self, data: bytes) -> str:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a half-written workbook
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise LedgerPersistenceError("save", str(e)) from e
        return self.location


def create_snapshot_store(settings) -> LedgerSnapshotStoreBase:
    """S3 when a bucket is configured, local file otherwise."""
    if settings.s3_bucket:
        return S3LedgerSnapshotStore(settings.s3_bucket, settings.ledger_object_key, settings.aws_region)
    logger.warning(
        "S3_BUCKET not set - keeping the ledger in a local file",
        path=settings.ledger_local_path
    )
    return FileLedgerSnapshotStore(settings.ledger_local_path)
