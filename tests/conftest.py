import shutil
import sys

import pytest

from execbox.core.settings import load_settings
from execbox.runner.supervisor import ProcessSupervisor
from execbox.services.artifacts import ArtifactManager
from execbox.services.job_service import JobService
from execbox.services.job_store import JobStore
from execbox.services.orchestrator import ExecutionOrchestrator
from execbox.services.queue import MemoryQueue
from execbox.services.storage import LocalFSStorage
from execbox.worker import BatchWorker

# python programs run with the interpreter running the tests
RUNTIMES = {"python3": sys.executable}

needs_gpp = pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
needs_java = pytest.mark.skipif(
    shutil.which("javac") is None or shutil.which("java") is None, reason="JDK not installed"
)
needs_node = pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")


@pytest.fixture
def settings(tmp_path):
    return load_settings(
        scratch_dir=tmp_path / "scratch",
        blob_dir=tmp_path / "blobs",
        status_db_url="sqlite://",
        runtimes=RUNTIMES,
        embedded_worker=False,
        sync_timeout_s=20,
        log_level="DEBUG",
    )


@pytest.fixture
def scratch(settings):
    return settings.scratch_dir


@pytest.fixture
def artifacts(scratch):
    return ArtifactManager(scratch)


@pytest.fixture
def orchestrator(settings):
    return ExecutionOrchestrator.from_settings(settings)


@pytest.fixture
def store():
    s = JobStore("sqlite://")
    yield s
    s.close()


@pytest.fixture
def blobs(settings):
    return LocalFSStorage(settings.blob_dir)


@pytest.fixture
def queue():
    return MemoryQueue()


@pytest.fixture
def worker(store, blobs, orchestrator):
    return BatchWorker(store, blobs, orchestrator)


@pytest.fixture
def service(settings, store, blobs, queue, orchestrator):
    return JobService(settings, store, blobs, queue, orchestrator)
