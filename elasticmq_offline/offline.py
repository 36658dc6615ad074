import os
import threading
import time
from logging import getLogger

from .config import Settings
from .errors import ProcessRuntimeError
from .utils import ProcessRunner, ShutdownHooks

logger = getLogger(__name__)


ELASTICMQ_JAR = 'elasticmq-server-0.15.7.jar'
MQ_LOCAL_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'bin')

START_HOOK = 'before:offline:start'
STOP_HOOK = 'before:offline:start:end'


class ElasticMqRunner(ProcessRunner):
    def __init__(self, bin_dir=MQ_LOCAL_PATH):
        # java -jar elasticmq-server-0.15.7.jar, run from the bin directory
        super().__init__(['java', '-jar', ELASTICMQ_JAR], cwd=bin_dir, name='elasticmq')


class ElasticMqOffline:
    """Starts the ElasticMQ emulator before the offline host starts and
    kills it when the host shuts down.

    ``hooks`` maps the host's lifecycle event names to start() and stop().
    Running emulators are tracked per port in ``instances``. The first
    successful start installs shutdown hooks so the emulator is killed on
    interpreter exit, on SIGINT, SIGTERM, SIGUSR1, SIGUSR2 and on an
    uncaught exception.
    """

    STARTUP_DELAY = 2.0

    def __init__(self, settings: Settings, bin_dir=None, log=None, startup_delay=None):
        self.settings = settings
        self.elasticmq_config = settings.elasticmq
        self.bin_dir = bin_dir or MQ_LOCAL_PATH
        self.log = log or logger.info
        self.startup_delay = self.STARTUP_DELAY if startup_delay is None else startup_delay
        self.instances: dict[str, ElasticMqRunner] = {}
        self.lock = threading.RLock()
        self.shutdown_hooks = ShutdownHooks(self.kill_configured_process)

        self.commands = {}
        self.hooks = {
            STOP_HOOK: self.stop,
            START_HOOK: self.start,
        }

    @property
    def port(self):
        return str(self.elasticmq_config.effective_port)

    def run_hook(self, name):
        hook = self.hooks.get(name)
        if hook is None:
            raise KeyError(f'unknown hook {name}')
        return hook()

    def should_execute(self):
        stages = self.elasticmq_config.stages
        return bool(stages) and self.settings.stage in stages

    def spawn_process(self):
        port = self.port
        with self.lock:
            current = self.instances.get(port)
            if current is not None and current.is_alive():
                logger.warning(f'ElasticMq Offline - already running on port {port}, pid {current.pid}')
                return None
            runner = ElasticMqRunner(bin_dir=self.bin_dir)
            runner.on_close = self.on_process_close
            runner.run()
            self.instances[port] = runner
        self.shutdown_hooks.install()
        return runner

    def on_process_close(self, exit_code):
        self.log(f'ElasticMq Offline - Failed to start with code {exit_code}')

    def kill_process(self, port):
        with self.lock:
            runner = self.instances.get(port)
            if runner is None:
                return
            logger.debug(f'killing elasticmq process {runner.pid} on port {port}')
            runner.kill()
            del self.instances[port]

    def kill_configured_process(self):
        self.kill_process(self.port)

    def check_health(self):
        """Raise ProcessRuntimeError if a tracked emulator reported a fault."""
        with self.lock:
            failed = [(port, runner.error) for port, runner in self.instances.items() if runner.error is not None]
        if failed:
            port, error = failed[0]
            raise ProcessRuntimeError(port, error)

    def start(self):
        if self.elasticmq_config.no_start:
            self.log('ElasticMq Offline - [noStart] options is true. Will not start.')
            return
        if not self.should_execute():
            self.log(f"ElasticMq Offline - stage '{self.settings.stage}' is not enabled. Will not start.")
            return

        runner = self.spawn_process()
        if runner is None:
            return

        self.log(f'ElasticMq Offline - Started, visit: http://localhost:{self.port}')

        # give the jvm time to boot, there is no readiness check
        time.sleep(self.startup_delay)
        self.check_health()

    def stop(self):
        try:
            self.kill_configured_process()
        except Exception as e:
            logger.error(f'ElasticMq Offline - failed to stop process: {e}', exc_info=True)
        self.log('ElasticMq Process - Stopped')

    def close(self):
        self.shutdown_hooks.uninstall()
