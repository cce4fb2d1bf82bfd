import boto3
import pytest
from botocore.stub import Stubber

from app.core.exceptions import InternalError
from app.domain.evidence import ArtifactKind
from app.services.evidence_service import S3EvidenceGate, StoragePaths

BUCKET = "evidence-test"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def evidence(s3_client):
    return S3EvidenceGate(client=s3_client, bucket=BUCKET)


def test_canonical_paths():
    assert StoragePaths.host_start_video("b1") == "bookings/b1/start/host_walkaround.mp4"
    assert StoragePaths.renter_start_video("b1") == "bookings/b1/start/renter_walkaround.mp4"
    assert StoragePaths.damage_photo("b1", 3) == "bookings/b1/end/host/photo_3.jpg"
    assert StoragePaths.return_video("b1") == "bookings/b1/host_return_video.mp4"
    assert StoragePaths.for_kind("b1", ArtifactKind.RETURN_VIDEO) == StoragePaths.return_video("b1")


async def test_exists_checks_the_canonical_key(evidence, stubber):
    stubber.add_response(
        "head_object", {}, {"Bucket": BUCKET, "Key": "bookings/b1/start/host_walkaround.mp4"}
    )
    stubber.add_client_error(
        "head_object",
        service_error_code="404",
        http_status_code=404,
        expected_params={"Bucket": BUCKET, "Key": "bookings/b1/start/renter_walkaround.mp4"},
    )

    assert await evidence.exists("b1", ArtifactKind.HOST_START_VIDEO)
    assert not await evidence.exists("b1", ArtifactKind.RENTER_START_VIDEO)


async def test_storage_failure_is_retryable_internal_error(evidence, stubber):
    stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(InternalError) as exc_info:
        await evidence.exists("b1", ArtifactKind.RETURN_VIDEO)

    assert exc_info.value.retryable
    assert exc_info.value.status_code == 503


async def test_damage_photos_are_counted_across_pages(evidence, stubber):
    prefix = "bookings/b1/end/host/"
    stubber.add_response(
        "list_objects_v2",
        {
            "IsTruncated": True,
            "NextContinuationToken": "page-2",
            "Contents": [{"Key": f"{prefix}photo_1.jpg"}, {"Key": f"{prefix}notes.txt"}],
        },
        {"Bucket": BUCKET, "Prefix": prefix},
    )
    stubber.add_response(
        "list_objects_v2",
        {"IsTruncated": False, "Contents": [{"Key": f"{prefix}photo_2.jpg"}, {"Key": f"{prefix}photo_x.jpg"}]},
        {"Bucket": BUCKET, "Prefix": prefix, "ContinuationToken": "page-2"},
    )

    assert await evidence.count_damage_photos("b1") == 2


async def test_damage_photo_existence_uses_listing(evidence, stubber):
    stubber.add_response(
        "list_objects_v2", {"IsTruncated": False}, {"Bucket": BUCKET, "Prefix": "bookings/b1/end/host/"}
    )

    assert not await evidence.exists("b1", ArtifactKind.DAMAGE_PHOTO)


async def test_evidence_status_with_presigned_urls(evidence, stubber):
    prefix = "bookings/b1/end/host/"
    stubber.add_response(
        "list_objects_v2",
        {"IsTruncated": False, "Contents": [{"Key": f"{prefix}photo_1.jpg"}]},
        {"Bucket": BUCKET, "Prefix": prefix},
    )
    stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": StoragePaths.host_start_video("b1")})
    stubber.add_client_error("head_object", service_error_code="NoSuchKey", http_status_code=404)
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

    status = await evidence.get_evidence_status("b1")

    assert status.host_start_video.uploaded
    assert status.host_start_video.path == StoragePaths.host_start_video("b1")
    assert BUCKET in status.host_start_video.url
    assert not status.renter_start_video.uploaded
    assert status.renter_start_video.url is None
    assert not status.return_video.uploaded
    assert status.damage_photo_count == 1
    assert len(status.damage_photo_urls) == 1
    assert status.url_expires_in == 300


async def test_evidence_status_without_urls(evidence, stubber):
    stubber.add_response("list_objects_v2", {"IsTruncated": False}, {"Bucket": BUCKET, "Prefix": "bookings/b1/end/host/"})
    for _ in range(3):
        stubber.add_response("head_object", {})

    status = await evidence.get_evidence_status("b1", include_urls=False)

    assert status.return_video.uploaded
    assert status.return_video.url is None
    assert status.damage_photo_urls == []
    assert status.url_expires_in is None
