import json

from execbox.core.models import JobDescriptor, JobStatus
from execbox.services.storage import code_key


def enqueue(store, blobs, job_id, code, language="python", **extra):
    key = code_key(job_id, "py" if language == "python" else language)
    blobs.put(key, code)
    store.set_status(job_id, JobStatus.QUEUED, {"language": language, "codeKey": key})
    desc = JobDescriptor(job_id=job_id, language=language, code_key=key, timestamp=1, **extra)
    return key, desc.to_message()


def blob_exists(blobs, key):
    return (blobs.root / key).exists()


def test_valid_job_completes(worker, store, blobs):
    key, body = enqueue(store, blobs, "w1", "print('hi')", timeout=30_000, memory_limit="512m")
    report = worker.process_batch([body])
    assert report.total == 1 and report.completed == 1
    rec = store.get("w1")
    assert rec.status is JobStatus.COMPLETED
    assert rec.data["result"] == "hi"
    assert rec.data["language"] == "python"
    assert rec.data["executionTime"] >= 0
    assert not blob_exists(blobs, key)


def test_runtime_failure_marks_failed(worker, store, blobs):
    key, body = enqueue(store, blobs, "w2", "raise ValueError('bad input')")
    report = worker.process_batch([body])
    assert report.failed == 1
    rec = store.get("w2")
    assert rec.status is JobStatus.FAILED
    assert "ValueError: bad input" in rec.data["error"]
    assert not blob_exists(blobs, key)


def test_malformed_descriptor_with_job_id_is_failed(worker, store, blobs):
    blobs.put("jobs/w3/code.py", "print(1)")
    body = json.dumps({"jobId": "w3", "codeKey": "jobs/w3/code.py"})  # no language/timestamp
    report = worker.process_batch([body])
    assert report.failed == 1
    rec = store.get("w3")
    assert rec.status is JobStatus.FAILED
    assert rec.data["error"].startswith("Malformed job descriptor")
    assert not blob_exists(blobs, "jobs/w3/code.py")


def test_unattributable_descriptor_is_dropped(worker):
    report = worker.process_batch(["{not json", json.dumps([1, 2, 3])])
    assert report.total == 2
    assert report.dropped == 2


def test_malformed_does_not_block_valid(worker, store, blobs):
    _, good = enqueue(store, blobs, "w4", "print('still runs')")
    report = worker.process_batch(["garbage", good])
    assert report.dropped == 1
    assert report.completed == 1
    assert store.get("w4").data["result"] == "still runs"


def test_missing_blob_fails_job(worker, store, blobs):
    key, body = enqueue(store, blobs, "w5", "print(1)")
    blobs.delete(key)
    report = worker.process_batch([body])
    assert report.failed == 1
    rec = store.get("w5")
    assert rec.status is JobStatus.FAILED
    assert "failed to fetch" in rec.data["error"]


def test_unexpected_exception_is_isolated(worker, store, blobs, monkeypatch):
    key1, bad = enqueue(store, blobs, "w6", "print(1)")
    _, good = enqueue(store, blobs, "w7", "print(2)")
    real_execute = worker.orchestrator.execute

    def flaky(code, language, job_id, **kw):
        if job_id == "w6":
            raise RuntimeError("orchestrator exploded")
        return real_execute(code, language, job_id, **kw)

    monkeypatch.setattr(worker.orchestrator, "execute", flaky)
    report = worker.process_batch([bad, good])
    assert report.failed == 1 and report.completed == 1
    rec = store.get("w6")
    assert rec.status is JobStatus.FAILED
    assert "orchestrator exploded" in rec.data["error"]
    assert not blob_exists(blobs, key1)
    assert store.get("w7").data["result"] == "2"


def test_redelivered_finished_job_is_skipped(worker, store, blobs):
    key, body = enqueue(store, blobs, "w8", "print('first')")
    worker.process_batch([body])
    blobs.put(key, "print('second')")
    report = worker.process_batch([body])
    assert report.skipped == 1
    assert store.get("w8").data["result"] == "first"
    assert not blob_exists(blobs, key)


def test_descriptor_timeout_bounds_the_job(worker, store, blobs):
    _, body = enqueue(store, blobs, "w9", "while True: pass", timeout=500)
    worker.process_batch([body])
    rec = store.get("w9")
    assert rec.status is JobStatus.FAILED
    assert rec.data["error"] == "Execution timed out after 500ms"


def test_status_write_failure_does_not_stop_execution(worker, store, blobs, monkeypatch):
    key, body = enqueue(store, blobs, "w10", "print('ran')")
    monkeypatch.setattr(store, "set_status", lambda *a, **kw: False)
    report = worker.process_batch([body])
    assert report.completed == 1
    assert not blob_exists(blobs, key)
