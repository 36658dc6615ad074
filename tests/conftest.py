"""Shared test fixtures for elasticmq-offline tests"""

import itertools
import signal
import sys
import threading

import pytest

from elasticmq_offline import offline as offline_module
from elasticmq_offline import utils
from elasticmq_offline.config import ElasticMqSettings, Settings
from elasticmq_offline.offline import ElasticMqOffline


class FakeStream:
    def __init__(self, lines=(), error=None):
        self.lines = list(lines)
        self.error = error
        self.closed = False

    def readline(self):
        if self.error is not None:
            raise self.error
        if self.lines:
            return self.lines.pop(0)
        return ''

    def close(self):
        self.closed = True


class FakePopen:
    """Stands in for subprocess.Popen: never starts anything, exits on kill()."""

    def __init__(self, args, pid, output=(), read_error=None, **kwargs):
        self.args = args
        self.kwargs = kwargs
        self.pid = pid
        self.returncode = None
        self.kill_calls = 0
        self.exited = threading.Event()
        self.stdin = FakeStream()
        self.stdout = FakeStream(output, error=read_error)

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self.exited.wait(timeout)
        return self.returncode

    def kill(self):
        self.kill_calls += 1
        self.exit(-signal.SIGKILL)

    def exit(self, code):
        if self.returncode is None:
            self.returncode = code
        self.exited.set()


class FakeSpawner:
    def __init__(self):
        self.processes = []
        self.error = None
        self.output = ()
        self.read_error = None
        self.pids = itertools.count(4242)

    def __call__(self, args, **kwargs):
        if self.error is not None:
            raise self.error
        process = FakePopen(
            args, pid=next(self.pids), output=self.output, read_error=self.read_error, **kwargs,
        )
        self.processes.append(process)
        return process

    def finish(self):
        for process in self.processes:
            process.exit(0)


@pytest.fixture
def fake_popen(monkeypatch):
    spawner = FakeSpawner()
    monkeypatch.setattr(utils.subprocess, "Popen", spawner)
    yield spawner
    spawner.finish()


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr(offline_module.time, "sleep", calls.append)
    return calls


@pytest.fixture
def make_settings():
    def _make(stages=("dev",), no_start=False, port=None, stage="dev"):
        settings = Settings()
        settings.stage = stage
        settings.elasticmq = ElasticMqSettings(stages=list(stages), no_start=no_start, port=port)
        settings.validate()
        return settings
    return _make


@pytest.fixture
def saved_signal_handlers():
    """Restore signal handlers and excepthook changed by a test."""
    signums = [getattr(signal, name) for name in utils.ShutdownHooks.SIGNALS if hasattr(signal, name)]
    handlers = {signum: signal.getsignal(signum) for signum in signums}
    excepthook = sys.excepthook
    yield handlers
    for signum, handler in handlers.items():
        signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
    sys.excepthook = excepthook


@pytest.fixture
def make_offline(tmp_path, fake_popen, sleeps, make_settings, saved_signal_handlers):
    created = []

    def _make(messages=None, **settings_kwargs):
        settings = make_settings(**settings_kwargs)
        log = messages.append if messages is not None else None
        offline = ElasticMqOffline(settings, bin_dir=str(tmp_path), log=log)
        created.append(offline)
        return offline

    yield _make

    for offline in created:
        for port in list(offline.instances):
            offline.kill_process(port)
        offline.close()


# Pytest markers
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "optional: needs java and the elasticmq jar, run with --run-optional"
    )
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
