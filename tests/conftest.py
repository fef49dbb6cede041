"""Pytest configuration and fixtures."""
import os
from typing import Dict, List, Optional

import pytest

from convert_app.clients.downloader import FetchResult
from convert_app.services.progress import ProgressEvent


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables for all tests."""
    test_env_vars = {
        "FLASK_ENV": "testing",
        "LOG_LEVEL": "DEBUG",
        "FFMPEG_PATH": "ffmpeg",
    }
    saved_api_key = os.environ.pop("API_KEY", None)

    for key, value in test_env_vars.items():
        os.environ[key] = value

    yield

    # Clean up environment variables after tests
    for key in test_env_vars:
        os.environ.pop(key, None)
    if saved_api_key is not None:
        os.environ["API_KEY"] = saved_api_key


@pytest.fixture(autouse=True)
def reset_config_cache():
    """Every test sees configuration built from its own environment."""
    from utils.config import get_app_config

    get_app_config.cache_clear()
    yield
    get_app_config.cache_clear()


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args)


class FakeTimerFactory:
    """Records every timer the sweeper creates."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(interval, function, args=args)
        self.timers.append(timer)
        return timer

    def fire_all(self):
        for timer in list(self.timers):
            timer.fire()


class FakeFetcher:
    """Writes a small intermediate file instead of downloading."""

    def __init__(self, title: Optional[str] = "Sample Clip!", error: Optional[Exception] = None):
        self.title = title
        self.error = error
        self.calls: List[tuple] = []
        self.before_write = None
        self.before_return = None

    def fetch(self, content_id, input_path):
        self.calls.append((content_id, input_path))
        if self.error is not None:
            raise self.error
        if self.before_write is not None:
            self.before_write()
        with open(input_path, "wb") as fh:
            fh.write(b"source-bytes")
        if self.before_return is not None:
            self.before_return()
        return FetchResult(path=input_path, title=self.title)


class FakeProcess:
    """Just enough of subprocess.Popen for the service."""

    def __init__(self, pid=4242):
        self.pid = pid
        self.returncode = None
        self.terminated = False
        self.stderr = None

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.returncode = -9


class FakeHandle:
    def __init__(self, job_id, process):
        self.job_id = job_id
        self.process = process

    @property
    def pid(self):
        return self.process.pid

    @property
    def returncode(self):
        return self.process.returncode


class FakeSupervisor:
    """Records started jobs and lets tests drive their progress by hand."""

    def __init__(self, spawn_error: Optional[Exception] = None):
        self.spawn_error = spawn_error
        self.on_spawn = None
        self.started: Dict[str, dict] = {}

    def start(self, job, on_event, on_exit):
        if self.spawn_error is not None:
            raise self.spawn_error
        handle = FakeHandle(job.id, FakeProcess())
        self.started[job.id] = {
            "job": job,
            "handle": handle,
            "on_event": on_event,
            "on_exit": on_exit,
        }
        if self.on_spawn is not None:
            self.on_spawn(job)
        return handle

    def progress(self, job_id, percent):
        self.started[job_id]["on_event"](job_id, ProgressEvent(percent=percent))

    def finish(self, job_id, data=b"converted-bytes", returncode=0, write_output=True):
        entry = self.started[job_id]
        if write_output:
            with open(entry["job"].output_path, "wb") as fh:
                fh.write(data)
        entry["on_event"](job_id, ProgressEvent(percent=100, done=True))
        entry["handle"].process.returncode = returncode
        entry["on_exit"](job_id, returncode)


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def app_config(tmp_path):
    from utils.config import AppConfig

    return AppConfig(work_dir=str(tmp_path / "work"), job_ttl_seconds=600, stream_chunk_size=4)


@pytest.fixture
def service(app_config, fetcher, supervisor, timer_factory):
    from convert_app.services.conversion import ConversionService
    from convert_app.services.expiry import ExpirySweeper

    return ConversionService(
        app_config,
        fetcher=fetcher,
        supervisor=supervisor,
        sweeper=ExpirySweeper(app_config.job_ttl_seconds, timer_factory=timer_factory),
    )


@pytest.fixture
def app_and_socketio(app_config, service):
    from convert_app import create_app

    return create_app(
        config_override={"work_dir": app_config.work_dir, "api_key": None, "TESTING": True},
        service=service,
    )


@pytest.fixture
def app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture
def client(app):
    return app.test_client()
