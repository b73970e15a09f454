"""
HTTP API tests against in-process services
"""

from clipflow.services.clip_pipeline import ClipPipelineService, get_clip_pipeline_service

MB = 1024 * 1024


def multipart_plan(client, **overrides):
    body = {
        "owner_id": "owner-1",
        "file_name": "Match Highlights.MP4",
        "file_size": 12 * MB,
        "mime_type": "video/mp4",
        "file_category": "video",
        "chunked": True,
        "chunk_size": 5 * MB,
    }
    body.update(overrides)
    response = client.post("/uploads/plan", json=body)
    assert response.status_code == 200
    return response.json()


def report(client, session_id, chunk_number, size=5 * MB):
    return client.put(
        f"/uploads/sessions/{session_id}/chunks/{chunk_number}",
        json={"checksum_tag": f"etag-{chunk_number}", "size": size},
    )


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_small_file_gets_single_upload_plan(client):
    response = client.post("/uploads/plan", json={
        "owner_id": "owner-1",
        "file_name": "thumb.png",
        "file_size": 2 * MB,
        "mime_type": "image/png",
        "file_category": "image",
    })

    assert response.status_code == 200
    plan = response.json()
    assert plan["upload_type"] == "single"
    assert plan["key"].startswith("uploads/owner-1/images/owner-1_")
    assert plan["headers"]["Content-Type"] == "image/png"
    assert plan["upload_url"].startswith("https://signed.example/put/")


def test_multipart_plan_opens_a_session(client, storage):
    plan = multipart_plan(client)

    assert plan["upload_type"] == "multipart"
    assert plan["total_chunks"] == 3
    assert plan["chunk_size"] == 5 * MB
    assert [part["part_number"] for part in plan["part_urls"]] == [1, 2, 3]
    assert plan["key"].endswith(".mp4")
    assert plan["upload_id"] in storage.open_uploads

    progress = client.get(f"/uploads/sessions/{plan['session_id']}").json()
    assert progress["status"] == "initializing"
    assert progress["completed_chunks"] == 0


def test_disallowed_mime_type_is_rejected(client):
    response = client.post("/uploads/plan", json={
        "owner_id": "owner-1",
        "file_name": "clip.exe",
        "file_size": MB,
        "mime_type": "application/x-msdownload",
        "file_category": "video",
    })

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_resumable_upload_completes(client, storage):
    plan = multipart_plan(client)
    session_id = plan["session_id"]

    assert report(client, session_id, 1).json()["status"] == "uploading"
    report(client, session_id, 3, size=2 * MB)
    progress = report(client, session_id, 2).json()
    assert progress["completed_chunks"] == 3
    assert progress["progress_percentage"] == 100

    response = client.post(f"/uploads/sessions/{session_id}/complete")

    assert response.status_code == 200
    session = response.json()
    assert session["status"] == "completed"
    assert session["final_locator"] == f"https://test-bucket.s3.amazonaws.com/{plan['key']}"
    key, upload_id, parts = storage.completed[0]
    assert upload_id == plan["upload_id"]
    assert parts == [(1, "etag-1"), (2, "etag-2"), (3, "etag-3")]


def test_completing_with_missing_chunks_is_a_conflict(client):
    session_id = multipart_plan(client)["session_id"]
    report(client, session_id, 1)

    response = client.post(f"/uploads/sessions/{session_id}/complete")

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "INCOMPLETE_UPLOAD"
    assert body["details"]["missing_chunks"] == [2, 3]


def test_chunk_number_out_of_range_is_rejected(client):
    session_id = multipart_plan(client)["session_id"]

    response = report(client, session_id, 4)

    assert response.status_code == 400


def test_unknown_session_is_not_found(client):
    response = client.get("/uploads/sessions/session_missing")

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_expired_session_is_gone(client, clock):
    session_id = multipart_plan(client)["session_id"]
    clock.advance(days=2)

    response = report(client, session_id, 1)

    assert response.status_code == 410
    assert response.json()["error"] == "SESSION_EXPIRED"


def test_abort_then_report_is_rejected(client, storage):
    plan = multipart_plan(client)
    session_id = plan["session_id"]

    response = client.post(f"/uploads/sessions/{session_id}/abort", json={"reason": "user cancelled"})
    assert response.status_code == 200
    assert response.json()["status"] == "aborted"
    assert response.json()["error_message"] == "user cancelled"
    assert storage.aborted == [plan["upload_id"]]

    response = report(client, session_id, 1)
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_SESSION_STATE"


def test_part_url_can_be_reissued(client):
    plan = multipart_plan(client)

    response = client.get(f"/uploads/sessions/{plan['session_id']}/chunks/2/url")

    assert response.status_code == 200
    assert response.json() == {
        "part_number": 2,
        "upload_url": f"https://signed.example/part/{plan['upload_id']}/2",
    }


def test_sessions_are_listed_per_owner(client):
    multipart_plan(client)
    multipart_plan(client)
    multipart_plan(client, owner_id="owner-2")

    response = client.get("/uploads/sessions", params={"owner_id": "owner-1"})

    assert response.status_code == 200
    assert len(response.json()) == 2
    assert {session["owner_id"] for session in response.json()} == {"owner-1"}


def test_clip_job_is_queued_then_readable(client, enqueued, sample_extraction_job):
    response = client.post("/clips", json=sample_extraction_job)

    assert response.status_code == 202
    assert response.json()["status"] == "pending"
    assert response.json()["task_id"] == "task-1"
    assert enqueued[0]["clip_id"] == "clip-123"

    clip = client.get("/clips/clip-123").json()
    assert clip["status"] == "pending"
    assert clip["is_composite"] is True
    assert clip["segment_count"] == 2


def test_clip_job_with_inverted_range_is_rejected(client, sample_extraction_job):
    sample_extraction_job["segments"][0]["end_time"] = "00:00:00,000"

    response = client.post("/clips", json=sample_extraction_job)

    assert response.status_code == 400


def test_unknown_clip_is_not_found(client):
    response = client.get("/clips/clip-missing")

    assert response.status_code == 404


def test_debug_sweep_and_reconcile(client, storage, clock):
    plan = multipart_plan(client)
    clock.advance(days=2)

    assert client.post("/debug/sweep-expired").json() == {"expired": 1}

    report_body = client.post("/debug/reconcile").json()
    assert report_body["aborted_upload_ids"] == [plan["upload_id"]]
    assert storage.open_uploads == {}


def test_clip_job_runs_in_process_without_a_queue(client, stitcher, clip_store, work_dir, clock, sample_extraction_job):
    local = ClipPipelineService(stitcher, clip_store, work_dir=work_dir, clock=clock)
    client.app.dependency_overrides[get_clip_pipeline_service] = lambda: local

    response = client.post("/clips", json=sample_extraction_job)

    assert response.status_code == 202
    assert response.json()["task_id"] is None
    clip = client.get("/clips/clip-123").json()
    assert clip["status"] == "completed"
    assert clip["duration"] == 20
    assert clip["video_url"] == "https://test-bucket.s3.amazonaws.com/clips/project-1/clip-123.mp4"
