import pytest
from sqlalchemy.exc import IntegrityError

from voxscribe.db.base import Base
from voxscribe.db.database import build_engine, build_session_factory
from voxscribe.db.job_store import JobStore
from voxscribe.errors import NotFoundError
from voxscribe.models.transcription import (
    JobStatus,
    SourceKind,
    TimingSource,
    TranscriptionJob,
    TranscriptionSegment,
)
from voxscribe.services.segments import SegmentDraft


def _job(store, owner_id=1, ref="talk.mp3"):
    return store.create_job(owner_id, SourceKind.FILE, ref, "openai")


def test_create_and_get_job(job_store):
    job = _job(job_store)

    fetched = job_store.get_job(job.id)
    assert fetched.status is JobStatus.PROCESSING
    assert fetched.owner_id == 1
    assert fetched.source_kind is SourceKind.FILE
    assert fetched.source_ref == "talk.mp3"
    assert fetched.text is None


def test_get_unknown_job_raises(job_store):
    with pytest.raises(NotFoundError):
        job_store.get_job(999)


def test_update_job_rejects_immutable_fields(job_store):
    job = _job(job_store)
    with pytest.raises(ValueError):
        job_store.update_job(job.id, owner_id=2)

    updated = job_store.update_job(job.id, source_title="A title")
    assert updated.source_title == "A title"


def test_list_jobs_by_owner_newest_first(job_store):
    first = _job(job_store, ref="a.mp3")
    second = _job(job_store, ref="b.mp3")
    _job(job_store, owner_id=2, ref="c.mp3")

    jobs = job_store.list_jobs_by_owner(1)
    assert [j.id for j in jobs] == [second.id, first.id]


def test_record_progress_writes_text_and_segments(job_store):
    job = _job(job_store)
    drafts = [SegmentDraft("One.", 0, 4000), SegmentDraft("Two.", 4000, 8000)]

    assert job_store.record_progress(job.id, "One. Two.", drafts) is True

    assert job_store.get_job(job.id).text == "One. Two."
    segments = job_store.list_segments_by_job(job.id)
    assert [(s.text, s.start_time_ms, s.end_time_ms) for s in segments] == [
        ("One.", 0, 4000),
        ("Two.", 4000, 8000),
    ]
    assert segments[0].timing_source is TimingSource.NOMINAL


def test_finish_job_only_once(job_store):
    job = _job(job_store)

    assert job_store.finish_job(job.id, JobStatus.COMPLETED, "done") is True
    assert job_store.finish_job(job.id, JobStatus.FAILED, "Transcription failed: late") is False

    final = job_store.get_job(job.id)
    assert final.status is JobStatus.COMPLETED
    assert final.text == "done"


def test_progress_ignored_after_terminal(job_store):
    job = _job(job_store)
    job_store.finish_job(job.id, JobStatus.FAILED, "Transcription failed: boom")

    assert job_store.record_progress(job.id, "late", [SegmentDraft("late", 0, 4000)]) is False
    assert job_store.list_segments_by_job(job.id) == []
    assert job_store.get_job(job.id).text == "Transcription failed: boom"


def test_finish_job_requires_terminal_status(job_store):
    job = _job(job_store)
    with pytest.raises(ValueError):
        job_store.finish_job(job.id, JobStatus.PROCESSING, "")


def test_segments_ordered_by_start_time(job_store):
    job = _job(job_store)
    job_store.create_segment(job.id, SegmentDraft("later", 5000, 6000))
    job_store.create_segment(job.id, SegmentDraft("earlier", 0, 1000))

    assert [s.text for s in job_store.list_segments_by_job(job.id)] == ["earlier", "later"]


def test_segment_must_start_before_it_ends(job_store):
    job = _job(job_store)
    with pytest.raises(IntegrityError):
        job_store.create_segment(job.id, SegmentDraft("broken", 1000, 1000))


def test_segment_for_unknown_job_raises(job_store):
    with pytest.raises(NotFoundError):
        job_store.create_segment(42, SegmentDraft("orphan", 0, 1000))


def test_deleting_job_removes_its_segments(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    Base.metadata.create_all(bind=engine)
    factory = build_session_factory(engine)
    store = JobStore(factory)
    job = _job(store)
    store.record_progress(job.id, "One.", [SegmentDraft("One.", 0, 4000)])

    db = factory()
    try:
        db.delete(db.get(TranscriptionJob, job.id))
        db.commit()
        assert db.query(TranscriptionSegment).count() == 0
    finally:
        db.close()
        engine.dispose()
