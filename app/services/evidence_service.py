"""Evidence gate backed by S3/MinIO.

Confirmations never handle media themselves; they only ask whether the
expected artifact has been uploaded to its canonical path:

- bookings/{id}/start/host_walkaround.mp4
- bookings/{id}/start/renter_walkaround.mp4
- bookings/{id}/end/host/photo_{n}.jpg
- bookings/{id}/host_return_video.mp4
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.core.exceptions import InternalError
from app.domain.evidence import ArtifactKind

logger = logging.getLogger(__name__)

DAMAGE_PHOTO_PATTERN = re.compile(r"photo_\d+\.jpg$")

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StoragePaths:
    """Canonical object keys for booking evidence."""

    @staticmethod
    def host_start_video(booking_id: str) -> str:
        return f"bookings/{booking_id}/start/host_walkaround.mp4"

    @staticmethod
    def renter_start_video(booking_id: str) -> str:
        return f"bookings/{booking_id}/start/renter_walkaround.mp4"

    @staticmethod
    def damage_photo(booking_id: str, n: int) -> str:
        return f"bookings/{booking_id}/end/host/photo_{n}.jpg"

    @staticmethod
    def damage_photos_dir(booking_id: str) -> str:
        return f"bookings/{booking_id}/end/host/"

    @staticmethod
    def return_video(booking_id: str) -> str:
        return f"bookings/{booking_id}/host_return_video.mp4"

    @classmethod
    def for_kind(cls, booking_id: str, kind: ArtifactKind) -> str:
        if kind is ArtifactKind.HOST_START_VIDEO:
            return cls.host_start_video(booking_id)
        if kind is ArtifactKind.RENTER_START_VIDEO:
            return cls.renter_start_video(booking_id)
        if kind is ArtifactKind.RETURN_VIDEO:
            return cls.return_video(booking_id)
        return cls.damage_photos_dir(booking_id)


class EvidenceGate(Protocol):
    """What the confirmation protocol needs from evidence storage."""

    async def exists(self, booking_id: str, kind: ArtifactKind) -> bool: ...

    async def count_damage_photos(self, booking_id: str) -> int: ...


@dataclass
class ArtifactStatus:
    uploaded: bool
    path: str | None = None
    url: str | None = None


@dataclass
class EvidenceStatus:
    booking_id: str
    host_start_video: ArtifactStatus
    renter_start_video: ArtifactStatus
    return_video: ArtifactStatus
    damage_photo_paths: list[str] = field(default_factory=list)
    damage_photo_urls: list[str] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    url_expires_in: int | None = None

    @property
    def damage_photo_count(self) -> int:
        return len(self.damage_photo_paths)


class S3EvidenceGate:
    """S3/MinIO evidence lookups."""

    def __init__(self, client=None, bucket: str | None = None) -> None:
        self._client = client
        self._bucket = bucket or settings.s3_bucket_name

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            config = Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            )
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region,
                endpoint_url=settings.s3_endpoint_url,  # For MinIO in dev
                config=config,
            )
        return self._client

    def _object_exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return False
            logger.error(f"Evidence lookup failed for {key}: {code}")
            raise InternalError("Evidence storage is unavailable", retryable=True) from e
        except BotoCoreError as e:
            logger.error(f"Evidence lookup failed for {key}: {e}")
            raise InternalError("Evidence storage is unavailable", retryable=True) from e

    def _list_damage_photos(self, booking_id: str) -> list[str]:
        prefix = StoragePaths.damage_photos_dir(booking_id)
        keys: list[str] = []
        kwargs = {"Bucket": self._bucket, "Prefix": prefix}
        try:
            while True:
                response = self.client.list_objects_v2(**kwargs)
                keys.extend(
                    obj["Key"]
                    for obj in response.get("Contents", [])
                    if DAMAGE_PHOTO_PATTERN.search(obj["Key"])
                )
                if not response.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Listing damage photos failed for booking {booking_id}: {e}")
            raise InternalError("Evidence storage is unavailable", retryable=True) from e
        return sorted(keys)

    async def exists(self, booking_id: str, kind: ArtifactKind) -> bool:
        if kind is ArtifactKind.DAMAGE_PHOTO:
            return await self.count_damage_photos(booking_id) > 0
        key = StoragePaths.for_kind(booking_id, kind)
        return await asyncio.to_thread(self._object_exists, key)

    async def count_damage_photos(self, booking_id: str) -> int:
        photos = await asyncio.to_thread(self._list_damage_photos, booking_id)
        return len(photos)

    def get_presigned_url(self, key: str, expires_in: int | None = None) -> str:
        """Generate a short-lived read URL for a private evidence object."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=expires_in or settings.evidence_url_expiry_seconds,
        )

    def _artifact_status(self, key: str, include_urls: bool) -> ArtifactStatus:
        if not self._object_exists(key):
            return ArtifactStatus(uploaded=False)
        url = self.get_presigned_url(key) if include_urls else None
        return ArtifactStatus(uploaded=True, path=key, url=url)

    def _evidence_status(self, booking_id: str, include_urls: bool) -> EvidenceStatus:
        photos = self._list_damage_photos(booking_id)
        return EvidenceStatus(
            booking_id=booking_id,
            host_start_video=self._artifact_status(
                StoragePaths.host_start_video(booking_id), include_urls
            ),
            renter_start_video=self._artifact_status(
                StoragePaths.renter_start_video(booking_id), include_urls
            ),
            return_video=self._artifact_status(StoragePaths.return_video(booking_id), include_urls),
            damage_photo_paths=photos,
            damage_photo_urls=[self.get_presigned_url(key) for key in photos] if include_urls else [],
            url_expires_in=settings.evidence_url_expiry_seconds if include_urls else None,
        )

    async def get_evidence_status(self, booking_id: str, include_urls: bool = True) -> EvidenceStatus:
        """Report which evidence artifacts exist, with optional presigned URLs.

        Callers must check that the requester is a party to the booking or an
        admin before exposing the result.
        """
        return await asyncio.to_thread(self._evidence_status, booking_id, include_urls)


# Singleton instance
evidence_gate = S3EvidenceGate()
