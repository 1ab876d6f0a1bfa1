"""HTTP client for the destination multipart upload service.

The service exposes three actions on ``{base_url}/{key}``:

* ``POST ?action=create-multipart`` -> ``{key, uploadId}``
* ``PUT ?action=upload-part&uploadId=&partNumber=`` (raw body) -> ``{etag, partNumber}``
* ``POST ?action=complete-multipart&uploadId=`` with ``{parts: [...]}`` -> 200
"""

import logging
import urllib.parse

import httpx

from partcopy.errors import FatalAssemblyError, TransientIOError
from partcopy.partstore.models import CompletedPart

logger = logging.getLogger(__name__)


class UploadServiceClient:
    """Async client for the destination upload service.

    Attributes:
        base_url: Service root URL without a trailing slash.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        create_action: str = "create-multipart",
        upload_part_action: str = "upload-part",
        complete_action: str = "complete-multipart",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.create_action = create_action
        self.upload_part_action = upload_part_action
        self.complete_action = complete_action
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def init(self) -> None:
        """Create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{urllib.parse.quote(key, safe='/')}"

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        assert self._client is not None
        try:
            return await self._client.request(method, self._url(key), **kwargs)
        except httpx.HTTPError as e:
            raise TransientIOError(f"{method} {self._url(key)} failed: {e}") from e

    async def create_multipart(self, key: str) -> str:
        """Start a multipart upload and return its upload id.

        Raises:
            TransientIOError: If the service rejects the request.
        """
        resp = await self._request("POST", key, params={"action": self.create_action})
        if not resp.is_success:
            raise TransientIOError(
                f"Failed to create multipart upload: {resp.status_code} {resp.text}"
            )
        try:
            upload_id = resp.json()["uploadId"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransientIOError(f"Invalid create-multipart response: {resp.text}") from e
        if not upload_id:
            raise TransientIOError("Destination returned an empty upload id")
        return upload_id

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, data: bytes
    ) -> CompletedPart:
        """Upload one part and return the destination's (etag, part_number).

        Raises:
            TransientIOError: If the upload is rejected or the response is malformed.
        """
        resp = await self._request(
            "PUT",
            key,
            params={
                "action": self.upload_part_action,
                "uploadId": upload_id,
                "partNumber": str(part_number),
            },
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        if not resp.is_success:
            raise TransientIOError(
                f"Failed to upload part {part_number}: {resp.status_code} {resp.text}"
            )
        try:
            payload = resp.json()
            part = CompletedPart(etag=payload["etag"], part_number=int(payload["partNumber"]))
        except (ValueError, KeyError, TypeError) as e:
            raise TransientIOError(f"Invalid upload-part response: {resp.text}") from e
        if not part.etag:
            raise TransientIOError(f"Destination returned an empty etag for part {part_number}")
        return part

    async def complete_multipart(
        self, key: str, upload_id: str, parts: list[CompletedPart]
    ) -> None:
        """Assemble the uploaded parts into the final object.

        Raises:
            FatalAssemblyError: If the service does not answer 200.
            TransientIOError: On network failure.
        """
        resp = await self._request(
            "POST",
            key,
            params={"action": self.complete_action, "uploadId": upload_id},
            json={"parts": [p.to_dict() for p in parts]},
        )
        if resp.status_code != 200:
            raise FatalAssemblyError(
                f"Complete multipart rejected for {key} ({upload_id}): "
                f"{resp.status_code} {resp.text}"
            )
