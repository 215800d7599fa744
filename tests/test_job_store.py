import asyncio
from datetime import timedelta

import pytest

from webprint.errors import JobNotFound, JobNotPending
from webprint.job_store import PrintJobStore
from webprint.models import Job, JobStatus, PrintSettings, utc_now


def make_job(tmp_path, name="a.pdf", **settings):
    path = tmp_path / name
    path.write_bytes(b"%PDF-1.4")
    return Job(
        original_name=name,
        stored_file_name=name,
        stored_file_path=str(path),
        settings=PrintSettings(**settings),
    )


@pytest.fixture
def store():
    return PrintJobStore(history_limit=3)


def test_list_pending_is_fifo(store, tmp_path):
    first = store.enqueue(make_job(tmp_path, "1.pdf"))
    second = store.enqueue(make_job(tmp_path, "2.pdf"))
    assert [job.id for job in store.list_pending()] == [first.id, second.id]
    assert len(store) == 2


def test_get_unknown_raises(store):
    with pytest.raises(JobNotFound):
        store.get("nope")


def test_mark_done_deletes_file_and_second_call_fails(store, tmp_path):
    job = store.enqueue(make_job(tmp_path))

    done = asyncio.run(store.mark_done(job.id))
    assert done.status == JobStatus.DONE
    assert done.completed_at is not None
    assert not (tmp_path / "a.pdf").exists()

    with pytest.raises(JobNotFound):
        asyncio.run(store.mark_done(job.id))
    assert not (tmp_path / "a.pdf").exists()


def test_mark_done_tolerates_missing_file(store, tmp_path):
    job = store.enqueue(make_job(tmp_path))
    (tmp_path / "a.pdf").unlink()
    assert asyncio.run(store.mark_done(job.id)).status == JobStatus.DONE


def test_mark_printing_is_exclusive(store, tmp_path):
    job = store.enqueue(make_job(tmp_path))

    store.mark_printing(job.id)
    assert store.list_pending() == []
    assert store.counts() == {"pending": 0, "printing": 1}

    with pytest.raises(JobNotPending):
        store.mark_printing(job.id)


def test_mark_error_records_reason(store, tmp_path):
    job = store.enqueue(make_job(tmp_path))
    failed = asyncio.run(store.mark_error(job.id, "paper jam"))
    assert failed.status == JobStatus.ERROR
    assert failed.error == "paper jam"
    assert store.history()[-1].id == job.id


def test_history_is_bounded(store, tmp_path):
    for index in range(5):
        job = store.enqueue(make_job(tmp_path, f"{index}.pdf"))
        asyncio.run(store.mark_done(job.id))
    assert len(store.history()) == 3


def test_expire_stale_only_touches_old_pending_jobs(tmp_path):
    now = utc_now()
    store = PrintJobStore(clock=lambda: now)

    old = make_job(tmp_path, "old.pdf")
    old.created_at = now - timedelta(hours=2)
    fresh = make_job(tmp_path, "fresh.pdf")
    busy = make_job(tmp_path, "busy.pdf")
    busy.created_at = now - timedelta(hours=2)
    for job in (old, fresh, busy):
        store.enqueue(job)
    store.mark_printing(busy.id)

    expired = asyncio.run(store.expire_stale(3600))

    assert [job.id for job in expired] == [old.id]
    assert expired[0].status == JobStatus.ERROR
    assert not (tmp_path / "old.pdf").exists()
    assert (tmp_path / "fresh.pdf").exists()
    assert store.get(busy.id).status == JobStatus.PRINTING


def test_public_form_uses_camel_case(tmp_path):
    job = make_job(tmp_path, copies=2, paper_size="A3")
    public = job.to_public()
    assert public["originalName"] == "a.pdf"
    assert public["settings"]["paperSize"] == "A3"
    assert public["settings"]["resolvedPages"] is None
    assert public["status"] == "pending"
