"""S3-compatible source store reader.

Reads object sizes and byte ranges through aiobotocore. Credentials come
from configuration when given, otherwise from the standard AWS credential
chain (env vars, ~/.aws/credentials, IAM role, etc.).
"""

import logging

from aiobotocore.session import AioSession
from botocore.exceptions import BotoCoreError, ClientError

from partcopy.errors import TransientIOError
from partcopy.partstore.models import ByteRange

logger = logging.getLogger(__name__)


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class S3Source:
    """Range reader over an S3-compatible endpoint.

    Attributes:
        endpoint_url: Custom endpoint (R2, MinIO, ...). Empty for AWS.
        region: Region name passed to the client.
    """

    def __init__(
        self,
        endpoint_url: str = "",
        region: str = "auto",
        access_key_id: str = "",
        secret_access_key: str = "",
        use_path_style: bool = False,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.region = region
        self.use_path_style = use_path_style
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    async def init(self) -> None:
        """Create the aiobotocore S3 client."""
        client_kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.use_path_style:
            from botocore.config import Config as BotoConfig

            client_kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})

        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()
        logger.info(
            "Source client initialized: endpoint=%s region=%s",
            self.endpoint_url or "aws",
            self.region,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def object_size(self, bucket: str, key: str) -> int:
        """Return the size of a source object in bytes.

        Raises:
            TransientIOError: If the object cannot be inspected.
        """
        try:
            resp = await self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = _error_code(e)
            if code in ("NoSuchKey", "404"):
                raise TransientIOError(f"Source object not found: {bucket}/{key}") from e
            raise TransientIOError(f"HeadObject failed for {bucket}/{key}: {code}") from e
        except BotoCoreError as e:
            raise TransientIOError(f"HeadObject failed for {bucket}/{key}: {e}") from e
        return int(resp.get("ContentLength") or 0)

    async def read_range(self, bucket: str, key: str, byte_range: ByteRange) -> bytes:
        """Read an inclusive byte range of a source object.

        Raises:
            TransientIOError: If the range is missing, unreadable or short.
        """
        try:
            resp = await self._client.get_object(
                Bucket=bucket, Key=key, Range=byte_range.header()
            )
        except ClientError as e:
            code = _error_code(e)
            raise TransientIOError(
                f"GetObject {byte_range.header()} failed for {bucket}/{key}: {code}"
            ) from e
        except BotoCoreError as e:
            raise TransientIOError(f"GetObject failed for {bucket}/{key}: {e}") from e

        body = resp.get("Body")
        if body is None:
            raise TransientIOError(f"Empty body for {bucket}/{key} {byte_range.header()}")
        async with body as stream:
            data = await stream.read()

        if len(data) != byte_range.length:
            raise TransientIOError(
                f"Short read for {bucket}/{key} {byte_range.header()}: "
                f"got {len(data)} of {byte_range.length} bytes"
            )
        return data
