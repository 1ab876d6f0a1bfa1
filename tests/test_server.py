"""Tests for the HTTP ingress and diagnostics routes."""

import pytest

from partcopy.messages import FetchMessage
from partcopy.session import resolve_session

from conftest import SOURCE_BUCKET, SOURCE_KEY, drain


class TestStartCopy:

    async def test_start_copy(self, client, app, upload_service):
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})

        assert resp.status_code == 200
        assert resp.json() == {
            "totalParts": 3,
            "partSize": 1000,
            "fileSize": 2500,
            "uploadId": "upload-1",
            "bucket": SOURCE_BUCKET,
            "key": SOURCE_KEY,
        }
        assert upload_service.created == [SOURCE_KEY]

        messages = await drain(app.state.queue)
        assert [type(m) for m in messages] == [FetchMessage] * 3
        assert [(m.byte_start, m.byte_end) for m in messages] == [
            (0, 999),
            (1000, 1999),
            (2000, 2499),
        ]

        session = resolve_session(SOURCE_BUCKET, SOURCE_KEY, "upload-1")
        assert (await app.state.store.counts(session)).total == 3

    async def test_legacy_field_names(self, client):
        resp = await client.post("/", json={"s3_bucket": SOURCE_BUCKET, "s3_key": SOURCE_KEY})
        assert resp.status_code == 200
        assert resp.json()["totalParts"] == 3

    async def test_full_copy_through_workers(self, client, app, upload_service, payload):
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})
        upload_id = resp.json()["uploadId"]

        await app.state.workers.run_until_idle()

        assert upload_service.assembled(upload_id) == payload
        status = await client.get(
            f"/uploads/{upload_id}", params={"bucket": SOURCE_BUCKET, "key": SOURCE_KEY}
        )
        assert status.status_code == 200
        body = status.json()
        assert body["state"] == "closed"
        assert (body["total"], body["completed"]) == (3, 3)
        assert [p["partNumber"] for p in body["parts"]] == [1, 2, 3]

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"sourceBucket": SOURCE_BUCKET},
            {"sourceKey": SOURCE_KEY},
            {"sourceBucket": "", "sourceKey": SOURCE_KEY},
            [SOURCE_BUCKET, SOURCE_KEY],
        ],
    )
    async def test_invalid_body(self, client, app, upload_service, body):
        resp = await client.post("/", json=body)
        assert resp.status_code == 400
        assert upload_service.created == []
        assert await app.state.queue.pending() == 0

    async def test_non_json_body(self, client):
        resp = await client.post("/", content=b"not json")
        assert resp.status_code == 400

    async def test_zero_file_size(self, client, app, source, upload_service):
        source.objects[(SOURCE_BUCKET, "empty.bin")] = b""
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": "empty.bin"})

        assert resp.status_code == 400
        assert upload_service.created == []
        assert await app.state.queue.pending() == 0
        assert await app.state.store.list_sessions() == []

    async def test_zero_part_size(self, client, app, upload_service):
        app.state.ingress.part_size = 0
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})

        assert resp.status_code == 400
        assert upload_service.created == []
        assert await app.state.queue.pending() == 0
        assert await app.state.store.list_sessions() == []

    async def test_missing_source_object_is_500(self, client, app):
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": "nope"})
        assert resp.status_code == 500
        assert "Source object not found" in resp.text
        assert await app.state.queue.pending() == 0

    async def test_destination_create_failure_is_500(self, client, app, upload_service):
        upload_service.fail_create = True
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})
        assert resp.status_code == 500
        assert "503" in resp.text
        assert await app.state.queue.pending() == 0

    async def test_unexpected_error_is_500_with_message(self, client, source):
        async def broken(bucket, key):
            raise RuntimeError("disk on fire")

        source.object_size = broken
        resp = await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})
        assert resp.status_code == 500
        assert resp.text == "disk on fire"

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    async def test_other_methods_not_allowed(self, client, method):
        resp = await client.request(method, "/")
        assert resp.status_code == 405


class TestDiagnostics:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_request_id_header(self, client):
        resp = await client.get("/health")
        assert len(resp.headers["x-request-id"]) == 16

    async def test_unknown_upload(self, client):
        resp = await client.get("/uploads/nope", params={"bucket": "b", "key": "k"})
        assert resp.status_code == 404

    async def test_upload_requires_bucket_and_key(self, client):
        resp = await client.get("/uploads/u1")
        assert resp.status_code == 400

    async def test_open_upload_reports_pending_parts(self, client):
        started = await client.post(
            "/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY}
        )
        upload_id = started.json()["uploadId"]
        resp = await client.get(
            f"/uploads/{upload_id}", params={"bucket": SOURCE_BUCKET, "key": SOURCE_KEY}
        )
        body = resp.json()
        assert body["state"] == "open"
        assert body["completed"] == 0
        assert body["parts"][2] == {
            "partIndex": 2,
            "byteStart": 2000,
            "byteEnd": 2499,
            "complete": False,
            "etag": None,
            "partNumber": None,
        }

    async def test_list_sessions_by_state(self, client, app):
        await client.post("/", json={"sourceBucket": SOURCE_BUCKET, "sourceKey": SOURCE_KEY})

        open_sessions = (await client.get("/sessions", params={"state": "open"})).json()
        assert len(open_sessions["sessions"]) == 1
        assert open_sessions["sessions"][0]["uploadId"] == "upload-1"

        closed = (await client.get("/sessions", params={"state": "closed"})).json()
        assert closed == {"sessions": []}

        bad = await client.get("/sessions", params={"state": "exploded"})
        assert bad.status_code == 400
