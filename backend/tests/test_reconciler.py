"""
Multipart upload reconciliation
"""

from clipflow.utils.errors import UpstreamStorageError


def test_live_session_upload_is_kept(reconciler, create_session, storage):
    session = create_session()

    report = reconciler.reconcile()

    assert report.inspected == 1
    assert report.aborted == 0
    assert session.backend_upload_id in storage.open_uploads


def test_aborted_and_failed_sessions_are_cleaned_up(reconciler, create_session, session_service, storage):
    aborted = create_session()
    failed = create_session()
    live = create_session()
    session_service.abort(aborted.session_id)
    session_service.fail(failed.session_id, "remote upload vanished")

    report = reconciler.reconcile()

    assert report.inspected == 3
    assert sorted(report.aborted_upload_ids) == sorted([aborted.backend_upload_id, failed.backend_upload_id])
    assert list(storage.open_uploads) == [live.backend_upload_id]


def test_session_past_expiry_is_cleaned_up_without_a_sweep(reconciler, create_session, storage, clock):
    session = create_session(expires_in=3600)
    clock.advance(hours=2)

    report = reconciler.reconcile()

    assert report.aborted_upload_ids == [session.backend_upload_id]
    assert storage.open_uploads == {}


def test_expired_session_is_cleaned_up_after_sweep(reconciler, create_session, session_service, storage, clock):
    session = create_session(expires_in=3600)
    clock.advance(hours=2)
    assert session_service.sweep_expired() == 1

    report = reconciler.reconcile()

    assert report.aborted_upload_ids == [session.backend_upload_id]


def test_completed_session_is_never_aborted(reconciler, create_session, session_service, storage, clock):
    session = create_session(total_chunks=1)
    session_service.report_chunk(session.session_id, 1, "etag-1", 5 * 1024 * 1024)
    session_service.complete(session.session_id, "https://test-bucket.s3.amazonaws.com/final.mp4")
    clock.advance(days=3)

    report = reconciler.reconcile()

    assert report.aborted == 0
    assert session.backend_upload_id in storage.open_uploads


def test_orphan_upload_is_aborted_only_after_grace_period(reconciler, storage, clock):
    upload_id = storage.create_multipart_upload("uploads/owner-1/videos/multipart/orphan.mp4", "video/mp4")

    assert reconciler.reconcile().aborted == 0

    clock.advance(days=1, seconds=1)
    report = reconciler.reconcile()

    assert report.aborted_upload_ids == [upload_id]


def test_orphan_upload_with_naive_timestamp_is_treated_as_utc(reconciler, storage, clock):
    upload_id = storage.create_multipart_upload("uploads/owner-1/videos/multipart/orphan.mp4", "video/mp4")
    storage.open_uploads[upload_id]["initiated"] = clock().replace(tzinfo=None)
    clock.advance(days=2)

    assert reconciler.reconcile().aborted_upload_ids == [upload_id]


def test_abort_failures_are_counted_not_raised(reconciler, create_session, session_service, storage):
    session = create_session()
    session_service.abort(session.session_id)
    storage.abort_error = UpstreamStorageError("access denied")

    report = reconciler.reconcile()

    assert report.inspected == 1
    assert report.aborted == 0
    assert report.failed == 1
    assert session.backend_upload_id in storage.open_uploads
