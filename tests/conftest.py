"""Shared pytest fixtures for partcopy tests.

External collaborators are faked at their seams: the source store is an
in-process object map with the same async interface as S3Source, and the
destination upload service is served through an httpx.MockTransport so the
real UploadServiceClient code runs end to end.
"""

import hashlib
import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from partcopy.clients.destination import UploadServiceClient
from partcopy.config import (
    CopyConfig,
    DestinationConfig,
    ObservabilityConfig,
    PartCopyConfig,
    PartStoreConfig,
    QueueConfig,
    ServerConfig,
)
from partcopy.coordinator import Coordinator
from partcopy.errors import TransientIOError
from partcopy.messages import decode_message
from partcopy.partstore.memory import MemoryPartStore
from partcopy.partstore.sqlite import SQLitePartStore
from partcopy.planner import Planner
from partcopy.server import attach_components, create_app
from partcopy.session import resolve_session
from partcopy.transport.memory import MemoryMessageQueue

SOURCE_BUCKET = "src-bucket"
SOURCE_KEY = "videos/big.bin"
DEST_BASE_URL = "http://dest.test"


def make_payload(size: int) -> bytes:
    """Deterministic, non-repeating-per-part test payload."""
    return bytes((i * 7 + i // 256) % 256 for i in range(size))


class FakeSource:
    """In-memory stand-in for S3Source."""

    def __init__(self, objects: dict[tuple[str, str], bytes] | None = None) -> None:
        self.objects = dict(objects or {})
        self.reads: list[tuple[str, str, int, int]] = []
        self.fail_reads = 0
        self.size_override: int | None = None

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def object_size(self, bucket: str, key: str) -> int:
        if self.size_override is not None:
            return self.size_override
        try:
            return len(self.objects[(bucket, key)])
        except KeyError:
            raise TransientIOError(f"Source object not found: {bucket}/{key}")

    async def read_range(self, bucket, key, byte_range) -> bytes:
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise TransientIOError("simulated source failure")
        self.reads.append((bucket, key, byte_range.start, byte_range.end))
        try:
            data = self.objects[(bucket, key)]
        except KeyError:
            raise TransientIOError(f"Source object not found: {bucket}/{key}")
        return data[byte_range.start : byte_range.end + 1]


class FakeUploadService:
    """Destination upload service served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.created: list[str] = []
        self.parts: dict[str, dict[int, bytes]] = {}
        self.completed: list[tuple[str, str, list[dict]]] = []
        self.upload_attempts = 0
        self.fail_uploads = 0
        self.fail_complete = 0
        self.fail_create = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        action = params.get("action")
        key = request.url.path.lstrip("/")

        if action == "create-multipart" and request.method == "POST":
            if self.fail_create:
                return httpx.Response(503, text="service unavailable")
            upload_id = f"upload-{len(self.created) + 1}"
            self.created.append(key)
            self.parts[upload_id] = {}
            return httpx.Response(200, json={"key": key, "uploadId": upload_id})

        if action == "upload-part" and request.method == "PUT":
            self.upload_attempts += 1
            if self.fail_uploads > 0:
                self.fail_uploads -= 1
                return httpx.Response(500, text="part rejected")
            upload_id = params["uploadId"]
            part_number = int(params["partNumber"])
            data = request.content
            self.parts.setdefault(upload_id, {})[part_number] = data
            etag = hashlib.md5(data).hexdigest()
            return httpx.Response(200, json={"etag": etag, "partNumber": part_number})

        if action == "complete-multipart" and request.method == "POST":
            if self.fail_complete > 0:
                self.fail_complete -= 1
                return httpx.Response(400, text="invalid part order")
            body = json.loads(request.content)
            self.completed.append((key, params["uploadId"], body["parts"]))
            return httpx.Response(200, json={"key": key})

        return httpx.Response(400, text=f"unexpected {request.method} {action}")

    def assembled(self, upload_id: str) -> bytes:
        """Concatenate uploaded parts in the order given to complete-multipart."""
        _, _, parts = next(c for c in self.completed if c[1] == upload_id)
        stored = self.parts[upload_id]
        return b"".join(stored[p["partNumber"]] for p in parts)


async def drain(queue) -> list:
    """Receive, decode and ack every visible message."""
    messages = []
    while True:
        delivery = await queue.receive()
        if delivery is None:
            return messages
        messages.append(decode_message(delivery.body))
        await queue.ack(delivery)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def session():
    return resolve_session(SOURCE_BUCKET, SOURCE_KEY, "upload-1")


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """A fresh part store of each backend."""
    if request.param == "memory":
        s = MemoryPartStore()
    else:
        s = SQLitePartStore(str(tmp_path / "parts.db"))
    await s.init_db()
    yield s
    await s.close()


@pytest.fixture
async def queue():
    q = MemoryMessageQueue(visibility_timeout=30.0)
    await q.init()
    yield q
    await q.close()


@pytest.fixture
def payload() -> bytes:
    return make_payload(2500)


@pytest.fixture
def source(payload) -> FakeSource:
    return FakeSource({(SOURCE_BUCKET, SOURCE_KEY): payload})


@pytest.fixture
def upload_service() -> FakeUploadService:
    return FakeUploadService()


@pytest.fixture
async def destination(upload_service):
    client = UploadServiceClient(DEST_BASE_URL, transport=httpx.MockTransport(upload_service.handler))
    await client.init()
    yield client
    await client.close()


@pytest.fixture
def coordinator(store, queue, source, destination) -> Coordinator:
    return Coordinator(store, queue, source, destination)


@pytest.fixture
def planner(store, queue) -> Planner:
    return Planner(store, queue)


@pytest.fixture
def config() -> PartCopyConfig:
    """Test config: 1000-byte parts, memory engines, metrics off."""
    return PartCopyConfig(
        server=ServerConfig(host="127.0.0.1", port=8799),
        copy=CopyConfig(part_size=1000),
        destination=DestinationConfig(base_url=DEST_BASE_URL),
        part_store=PartStoreConfig(engine="memory"),
        queue=QueueConfig(engine="memory", workers=2, max_attempts=3, retry_delay_seconds=0),
        observability=ObservabilityConfig(metrics=False),
    )


@pytest.fixture
async def app(config, source, destination):
    """An app with memory store and queue wired on app.state.

    The lifespan does not run under ASGITransport, so components are
    attached directly.
    """
    application = create_app(config)
    store = MemoryPartStore()
    queue = MemoryMessageQueue()
    await store.init_db()
    await queue.init()
    attach_components(application, config, store, queue, source, destination)
    yield application
    await queue.close()
    await store.close()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
