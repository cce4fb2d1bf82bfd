"""Evidence requirements for booking confirmations.

Each confirmation may require a physical artifact uploaded by the confirming
party before it is accepted. This module only decides *what* is required;
checking that it exists is the evidence gate's job.
"""

from dataclasses import dataclass
from enum import Enum

from app.core.exceptions import ErrorCode


class ArtifactKind(str, Enum):
    HOST_START_VIDEO = "host_start_video"
    RENTER_START_VIDEO = "renter_start_video"
    DAMAGE_PHOTO = "damage_photo"
    RETURN_VIDEO = "return_video"


@dataclass(frozen=True)
class EvidenceRequirement:
    kind: ArtifactKind
    code: ErrorCode
    message: str
    required_action: str
    min_count: int = 1


HOST_START_VIDEO = EvidenceRequirement(
    kind=ArtifactKind.HOST_START_VIDEO,
    code=ErrorCode.VIDEO_REQUIRED,
    message="Host walkaround video is required before confirming trip start",
    required_action="Upload walkaround video",
)

RENTER_START_VIDEO = EvidenceRequirement(
    kind=ArtifactKind.RENTER_START_VIDEO,
    code=ErrorCode.VIDEO_REQUIRED,
    message="Renter walkaround video is required before confirming trip start",
    required_action="Upload walkaround video",
)

DAMAGE_PHOTOS = EvidenceRequirement(
    kind=ArtifactKind.DAMAGE_PHOTO,
    code=ErrorCode.DAMAGE_PHOTOS_REQUIRED,
    message="At least one damage photo is required when reporting damage",
    required_action="Upload damage photos",
)

RETURN_VIDEO = EvidenceRequirement(
    kind=ArtifactKind.RETURN_VIDEO,
    code=ErrorCode.RETURN_VIDEO_REQUIRED,
    message="Return condition video is required before confirming completion",
    required_action="Upload return video",
)
