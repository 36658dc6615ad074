import atexit
import os
import shlex
import signal
import subprocess
import sys
import threading
from logging import getLogger

from .errors import SpawnFailure

logger = getLogger(__name__)


class GracefulKiller:
    kill_now = False

    def __init__(self):
        signal.signal(signal.SIGINT, self.exit_gracefully)
        signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        self.kill_now = True


class ShutdownHooks:
    """Run a callback on every path the interpreter can take to exit.

    Covers interpreter exit (normal return and sys.exit) through atexit,
    SIGINT, SIGTERM, SIGUSR1 and SIGUSR2, and uncaught exceptions through
    sys.excepthook. Handlers that were in place before install() are chained:
    after the callback ran, the previous signal handler or excepthook is
    invoked. A signal whose previous disposition was the default one ends
    the process with exit code 128 + signum.

    install() is idempotent, so the callback is attached at most once per
    ShutdownHooks instance.
    """

    SIGNALS = ('SIGINT', 'SIGTERM', 'SIGUSR1', 'SIGUSR2')

    def __init__(self, callback):
        self.callback = callback
        self.installed = False
        self.previous_handlers = {}
        self.previous_excepthook = None

    def install(self):
        if self.installed:
            return
        self.installed = True

        atexit.register(self.run_callback)

        for name in self.SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                self.previous_handlers[signum] = signal.signal(signum, self._handle_signal)
            except ValueError as e:
                # signal.signal only works from the main thread
                logger.warning(f'could not install {name} handler: {e}')

        self.previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_exception

    def uninstall(self):
        if not self.installed:
            return
        self.installed = False

        atexit.unregister(self.run_callback)

        for signum, previous in self.previous_handlers.items():
            if signal.getsignal(signum) != self._handle_signal:
                continue
            try:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except ValueError as e:
                logger.warning(f'could not restore handler for signal {signum}: {e}')
        self.previous_handlers = {}

        if sys.excepthook == self._handle_exception:
            sys.excepthook = self.previous_excepthook
        self.previous_excepthook = None

    def run_callback(self):
        try:
            self.callback()
        except Exception as e:
            logger.error(f'shutdown callback failed: {e}', exc_info=True)

    def _handle_signal(self, signum, frame):
        logger.debug(f'received signal {signum}, running shutdown callback')
        self.run_callback()

        previous = self.previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_IGN:
            return
        else:
            sys.exit(128 + signum)

    def _handle_exception(self, exc_type, exc_value, exc_traceback):
        self.run_callback()
        hook = self.previous_excepthook or sys.__excepthook__
        hook(exc_type, exc_value, exc_traceback)


class ProcessRunner:
    """Owns one child process.

    The child gets a piped stdin and stdout and inherits stderr. A daemon
    thread drains stdout into the logger and then waits for the child to
    exit. When the child exits without kill() having been called, on_close
    is invoked with its exit code. Failures of the watcher thread are kept
    in ``error`` for the owner to poll.
    """

    def __init__(self, cmd, cwd=None, name='subprocess'):
        self.cmd = cmd
        self.cwd = cwd
        self.name = name
        self.process = None
        self.log_forwarding_thread = None
        self.should_stop_forwarding = False
        self.stop_requested = False
        self.exit_code = None
        self.error = None
        self.on_close = None

    @property
    def pid(self):
        if self.process is None:
            return None
        return self.process.pid

    def _forward_logs(self, process):
        """Forward subprocess output to the logger until the pipe closes."""
        try:
            for line in iter(process.stdout.readline, ''):
                if self.should_stop_forwarding:
                    break
                if line.strip():
                    logger.debug(f'[{self.name}] {line.strip()}')
        except Exception as e:
            if not self.should_stop_forwarding:
                logger.error(f'[{self.name}] failed reading process output: {e}')
                self.error = e

    def _watch(self, process):
        self._forward_logs(process)
        try:
            exit_code = process.wait()
        except Exception as e:
            logger.error(f'[{self.name}] failed waiting for process {process.pid}: {e}')
            self.error = e
            return

        self.exit_code = exit_code
        if self.stop_requested:
            logger.debug(f'[{self.name}] process {process.pid} exited with code {exit_code}')
            return
        if self.on_close is not None:
            self.on_close(exit_code)

    def run(self):
        try:
            cmd = shlex.split(self.cmd) if isinstance(self.cmd, str) else list(self.cmd)
        except ValueError as e:
            logger.error(f"Failed to parse command '{self.cmd}': {e}")
            raise SpawnFailure(f"Invalid command '{self.cmd}'") from e

        self.stop_requested = False
        self.should_stop_forwarding = False
        self.exit_code = None
        self.error = None

        try:
            self.process = subprocess.Popen(
                cmd,
                env=os.environ.copy(),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None,  # inherited from the parent
                universal_newlines=True,
                errors='replace',  # keep draining on undecodable bytes
                bufsize=1,
                start_new_session=True,  # only kill() stops the child, not terminal signals
                cwd=self.cwd,
            )
        except OSError as e:
            logger.error(f"Failed to start process '{self.cmd}': {e}")
            raise SpawnFailure(f"Unable to start process '{self.cmd}': {e}") from e

        if self.process.pid is None:
            self.process = None
            raise SpawnFailure(f"Unable to start process '{self.cmd}'")

        logger.debug(f'Started process {self.process.pid}: {self.cmd}')

        self.log_forwarding_thread = threading.Thread(
            target=self._watch,
            args=(self.process,),
            daemon=True,
            name=f'LogForwarder-{self.process.pid}',
        )
        self.log_forwarding_thread.start()

    def is_alive(self):
        return self.process is not None and self.process.poll() is None

    def kill(self):
        """Send SIGKILL to the child. Does not wait for it to exit."""
        if self.process is None:
            return
        self.stop_requested = True
        self.should_stop_forwarding = True
        try:
            self.process.kill()
        except OSError as e:
            logger.warning(f'Error killing process {self.process.pid}: {e}')
        if self.process.stdin is not None:
            try:
                self.process.stdin.close()
            except OSError as e:
                logger.debug(f'Error closing stdin of process {self.process.pid}: {e}')

    def wait_complete(self, timeout=None):
        if self.log_forwarding_thread is not None and self.log_forwarding_thread.is_alive():
            self.log_forwarding_thread.join(timeout=timeout)
        return self.exit_code
