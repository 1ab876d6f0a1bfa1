"""Ingress: start a copy session from a ``{sourceBucket, sourceKey}`` request."""

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from partcopy import metrics
from partcopy.clients.destination import UploadServiceClient
from partcopy.clients.source import S3Source
from partcopy.planner import Planner, plan_parts
from partcopy.session import resolve_session

logger = logging.getLogger(__name__)


class CopyRequest(BaseModel):
    """Body of a copy request. Accepts the legacy ``s3_bucket``/``s3_key`` names."""

    source_bucket: str = Field(
        min_length=1, validation_alias=AliasChoices("sourceBucket", "s3_bucket")
    )
    source_key: str = Field(min_length=1, validation_alias=AliasChoices("sourceKey", "s3_key"))


class CopyIngress:
    """Plans a copy, opens the destination upload, and seeds the work queue."""

    def __init__(
        self,
        source: S3Source,
        destination: UploadServiceClient,
        planner: Planner,
        part_size: int,
    ) -> None:
        self.source = source
        self.destination = destination
        self.planner = planner
        self.part_size = part_size

    async def start(self, request: CopyRequest) -> dict[str, Any]:
        """Start copying one object.

        Sizes are validated before the destination upload is created, so an
        invalid size leaves no trace anywhere.

        Returns:
            ``{totalParts, partSize, fileSize, uploadId, bucket, key}``

        Raises:
            InvalidSizeError: If the object size or configured part size is not positive.
            TransientIOError: If the source or destination cannot be reached.
        """
        bucket, key = request.source_bucket, request.source_key
        file_size = await self.source.object_size(bucket, key)
        ranges = plan_parts(file_size, self.part_size)
        logger.info(
            "Planning %s/%s: fileSize=%d partSize=%d parts=%d",
            bucket,
            key,
            file_size,
            self.part_size,
            len(ranges),
        )

        upload_id = await self.destination.create_multipart(key)
        session = resolve_session(bucket, key, upload_id)
        records = await self.planner.seed(session, ranges)
        metrics.record_session_started()

        return {
            "totalParts": len(records),
            "partSize": self.part_size,
            "fileSize": file_size,
            "uploadId": upload_id,
            "bucket": bucket,
            "key": key,
        }
