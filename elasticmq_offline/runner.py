import time
import threading
from uvicorn import Config, Server
from fastapi import APIRouter, FastAPI

from logging import getLogger

from .config import Settings
from .offline import ElasticMqOffline, START_HOOK, STOP_HOOK
from .utils import GracefulKiller


logger = getLogger(__name__)


class Runner:
    """Stands in for the offline host: fires the start hook, keeps the
    emulator alive until SIGINT or SIGTERM and fires the stop hook."""

    CHECK_INTERVAL = 1

    def __init__(self, config: Settings, offline: ElasticMqOffline):
        self.config = config
        self.offline = offline
        self.app = FastAPI()
        self.router = None
        self.http_server = None
        self.need_restart = False
        self.restarted = False
        self.restart_error = None
        self.killer = None

    def create_router(self):
        router = APIRouter()
        router.add_api_route("/status", self.status, methods=["GET"])
        router.add_api_route("/restart_emulator", self.restart_emulator, methods=["GET"])
        return router

    def run_server(self):
        if not self.config.http_host or not self.config.http_port:
            logger.info('http server disabled')
            return
        logger.info(f'starting http server on {self.config.http_host}:{self.config.http_port}')

        config = Config(app=self.app, host=self.config.http_host, port=self.config.http_port)
        self.router = self.create_router()
        self.app.include_router(self.router)

        self.http_server = Server(config)
        self.http_server.run()

    def status(self):
        port = self.offline.port
        runner = self.offline.instances.get(port)
        return {
            "stage": self.config.stage,
            "port": int(port),
            "enabled": self.offline.should_execute() and not self.config.elasticmq.no_start,
            "running": runner is not None and runner.is_alive(),
            "pid": runner.pid if runner is not None else None,
        }

    def restart_emulator(self):
        self.restarted = False
        self.need_restart = True
        while not self.restarted:
            logger.info('waiting emulator restarted..')
            time.sleep(1)
        if self.restart_error is not None:
            return {"restarted": False, "error": str(self.restart_error)}
        return {"restarted": True}

    def restart_if_required(self):
        if not self.need_restart:
            return
        logger.info('restarting emulator')
        self.restart_error = None
        try:
            self.offline.run_hook(STOP_HOOK)
            self.offline.run_hook(START_HOOK)
        except Exception as e:
            logger.error(f'failed to restart emulator: {e}')
            self.restart_error = e
            raise
        finally:
            # always release the http request waiting in restart_emulator
            self.need_restart = False
            self.restarted = True

    def run(self):
        self.killer = GracefulKiller()

        self.offline.run_hook(START_HOOK)

        server_thread = threading.Thread(target=self.run_server, daemon=True)
        server_thread.start()

        try:
            while not self.killer.kill_now:
                time.sleep(self.CHECK_INTERVAL)
                self.restart_if_required()
                self.offline.check_health()
        finally:
            logger.info('stopping runner')
            self.offline.run_hook(STOP_HOOK)

            if self.http_server:
                self.http_server.should_exit = True
                server_thread.join()

        logger.info('stopped')
