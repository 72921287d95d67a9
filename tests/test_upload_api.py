import os
from datetime import datetime, timedelta, timezone
import pytest
from faker import Faker
from conftest import make_token

fake = Faker()


def init_upload(client, headers, **overrides):
    body = {"fileName": "book.pdf", "fileSize": 300, "totalChunks": 3}
    body.update(overrides)
    return client.post("/api/upload/init", json=body, headers=headers)


def send_chunk(client, headers, session_id: str, chunk_number, data: bytes, total_chunks=3):
    return client.post(
        "/api/upload/chunk",
        data={"sessionId": session_id, "chunkNumber": str(chunk_number), "totalChunks": str(total_chunks)},
        files={"chunk": ("blob", data, "application/octet-stream")},
        headers=headers,
    )


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_book_upload_end_to_end(client, auth_headers, settings) -> None:
    response = init_upload(client, auth_headers, mimeType="application/pdf")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Upload session initialized"
    session_id = body["sessionId"]

    parts = [os.urandom(100) for _ in range(3)]
    for number, data in enumerate(parts, start=1):
        response = send_chunk(client, auth_headers, session_id, number, data)
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "chunkNumber": number,
            "message": f"Chunk {number} uploaded successfully",
        }

    status = client.get(f"/api/upload/status/{session_id}", headers=auth_headers).json()
    assert status["session"]["progress"] == 100
    assert status["session"]["uploadedChunks"] == [1, 2, 3]

    response = client.post(
        "/api/upload/complete",
        json={"sessionId": session_id, "uploadedChunks": [1, 2, 3], "fileName": "book.pdf", "fileSize": 300},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["fileSize"] == 300
    assert body["originalName"] == "book.pdf"
    assert body["fileName"].endswith("_book.pdf")
    assert body["message"] == "File uploaded and assembled successfully"
    with open(body["filePath"], "rb") as f:
        assert f.read() == b"".join(parts)

    response = client.get(f"/api/upload/status/{session_id}", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Upload session not found"


def test_status_payload(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]
    send_chunk(client, auth_headers, session_id, 2, b"x" * 100)

    response = client.get(f"/api/upload/status/{session_id}", headers=auth_headers)

    assert response.status_code == 200
    session = response.json()["session"]
    assert session["fileName"] == "book.pdf"
    assert session["fileSize"] == 300
    assert session["totalChunks"] == 3
    assert session["uploadedChunks"] == [2]
    assert session["progress"] == 33
    created_at = datetime.fromisoformat(session["createdAt"].replace("Z", "+00:00"))
    assert abs(datetime.now(timezone.utc) - created_at) < timedelta(minutes=1)


def test_complete_with_missing_chunks(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]
    for number in (1, 2, 3):
        send_chunk(client, auth_headers, session_id, number, b"x" * 100)

    response = client.post(
        "/api/upload/complete",
        json={"sessionId": session_id, "uploadedChunks": [1, 3], "fileName": "book.pdf", "fileSize": 300},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "status": "fail",
        "message": "Missing chunks: 2",
        "missingChunks": [2],
    }


def test_complete_size_mismatch(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]
    for number in (1, 2, 3):
        send_chunk(client, auth_headers, session_id, number, b"x" * 100)

    response = client.post(
        "/api/upload/complete",
        json={"sessionId": session_id, "uploadedChunks": [1, 2, 3], "fileName": "book.pdf", "fileSize": 299},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "File size mismatch after assembly"
    assert client.get(f"/api/upload/status/{session_id}", headers=auth_headers).status_code == 200


def test_init_missing_fields(client, auth_headers) -> None:
    response = client.post("/api/upload/init", json={"fileName": "book.pdf"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Missing required fields: fileName, fileSize, totalChunks"


def test_init_with_client_upload_id(client, auth_headers) -> None:
    response = init_upload(client, auth_headers, uploadId="upload_1700000000_k3j2")

    assert response.json()["sessionId"] == "upload_1700000000_k3j2"


def test_init_rejects_malformed_body(client, auth_headers) -> None:
    response = init_upload(client, auth_headers, fileSize="three hundred")

    assert response.status_code == 400
    assert response.json()["status"] == "fail"


def test_chunk_unknown_session(client, auth_headers) -> None:
    response = send_chunk(client, auth_headers, "missing-session", 1, b"abc")

    assert response.status_code == 404
    assert response.json()["message"] == "Upload session not found"


def test_chunk_out_of_range(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]

    response = send_chunk(client, auth_headers, session_id, 4, b"abc")

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid chunk number"


def test_chunk_without_file(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]

    response = client.post(
        "/api/upload/chunk",
        data={"sessionId": session_id, "chunkNumber": "1"},
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_cleanup(client, auth_headers) -> None:
    init_upload(client, auth_headers, uploadId="upload_42_abc")

    response = client.post("/api/upload/cleanup", json={"uploadId": "upload_42"}, headers=auth_headers)
    assert response.json() == {"success": True, "message": "Upload session cleaned up"}

    response = client.post("/api/upload/cleanup", json={"uploadId": "upload_42"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "No session found to clean up"}


def test_cleanup_missing_upload_id(client, auth_headers) -> None:
    response = client.post("/api/upload/cleanup", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Missing uploadId"


def test_sessions_are_private_to_their_owner(client, auth_headers) -> None:
    session_id = init_upload(client, auth_headers).json()["sessionId"]
    other = {"Authorization": f"Bearer {make_token({'sub': str(fake.uuid4())})}"}

    assert client.get(f"/api/upload/status/{session_id}", headers=other).status_code == 404


@pytest.mark.parametrize("path,method", [
    ("/api/upload/init", "post"),
    ("/api/upload/chunk", "post"),
    ("/api/upload/complete", "post"),
    ("/api/upload/cleanup", "post"),
    ("/api/upload/status/abc", "get"),
])
def test_routes_require_token(client, path: str, method: str) -> None:
    response = getattr(client, method)(path)
    assert response.status_code in (401, 403)
    assert response.json()["success"] is False


def test_invalid_token(client) -> None:
    headers = {"Authorization": f"Bearer {make_token({'sub': 'u1'}, secret='wrong-secret')}"}

    response = init_upload(client, headers)

    assert response.status_code == 401
    assert response.json() == {"success": False, "status": "fail", "message": "Invalid token."}


def test_expired_token(client) -> None:
    expired = datetime.now(timezone.utc) - timedelta(minutes=5)
    headers = {"Authorization": f"Bearer {make_token({'sub': 'u1', 'exp': expired})}"}

    response = init_upload(client, headers)

    assert response.status_code == 401
    assert response.json() == {"success": False, "status": "fail", "message": "Token expired."}


def test_token_with_id_claim(client) -> None:
    headers = {"Authorization": f"Bearer {make_token({'id': 7, 'email': 'admin@example.com'})}"}

    response = init_upload(client, headers)

    assert response.status_code == 200


def test_token_without_user(client) -> None:
    headers = {"Authorization": f"Bearer {make_token({'role': 'admin'})}"}

    response = init_upload(client, headers)

    assert response.status_code == 403


def test_token_without_user_renders_error_body(client) -> None:
    headers = {"Authorization": f"Bearer {make_token({'role': 'admin'})}"}

    response = init_upload(client, headers)

    assert response.json() == {"success": False, "status": "fail", "message": "Invalid token: missing sub."}


def test_chunk_over_size_limit(client, auth_headers, storage) -> None:
    storage.max_chunk_size = 1024
    session_id = init_upload(client, auth_headers, fileSize=3000).json()["sessionId"]

    response = send_chunk(client, auth_headers, session_id, 1, b"x" * 2048)

    assert response.status_code == 400
    assert response.json()["message"] == "File too large"
    status = client.get(f"/api/upload/status/{session_id}", headers=auth_headers).json()
    assert status["session"]["uploadedChunks"] == []
