import threading
from dataclasses import asdict
from logging import DEBUG, getLogger

from fastapi import APIRouter, FastAPI
from uvicorn import Config, Server

from .client import BinaryLogClient
from .config import Settings
from .listeners import EventListener, LifecycleListener
from .monitoring import Monitoring
from .server_api import ServerApi
from .statistics import BinaryLogClientStatistics
from .utils import GracefulKiller, format_floats


logger = getLogger(__name__)


app = FastAPI()


class LoggingListener(EventListener, LifecycleListener):
    def on_event(self, event):
        if logger.isEnabledFor(DEBUG):
            logger.debug(f'event: {event}')

    def on_connect(self, client):
        logger.info(f'connected to binlog stream, connection id {client.connection_id}')

    def on_communication_failure(self, client, exc):
        logger.warning(f'communication failure: {exc}')

    def on_event_deserialization_failure(self, client, exc):
        logger.warning(f'event skipped, failed to deserialize: {exc}')

    def on_disconnect(self, client):
        logger.info(f'disconnected at {client.binlog_filename}/{client.binlog_position}')


class ClientRunner:

    CONNECT_RETRY_INTERVAL = 15

    def __init__(self, config: Settings):
        self.config = config
        self.client = BinaryLogClient(config.get_client_config())
        self.statistics = BinaryLogClientStatistics().register_with(self.client)
        logging_listener = LoggingListener()
        self.client.register_event_listener(logging_listener)
        self.client.register_lifecycle_listener(logging_listener)
        self.http_server = None
        self.router = None

    def run_server(self):
        if not self.config.http_host or not self.config.http_port:
            logger.info('http server disabled')
            return
        logger.info('starting http server')

        config = Config(app=app, host=self.config.http_host, port=self.config.http_port)
        self.router = APIRouter()
        self.router.add_api_route("/status", self.get_status, methods=["GET"])
        self.router.add_api_route("/statistics", self.get_statistics, methods=["GET"])
        app.include_router(self.router)

        self.http_server = Server(config)
        self.http_server.run()

    def get_status(self):
        return asdict(self.client.status())

    def get_statistics(self):
        return format_floats(self.statistics.get_stats())

    def connect(self, killer: GracefulKiller) -> bool:
        timeout = self.client.config.connect_timeout or self.CONNECT_RETRY_INTERVAL
        while not killer.kill_now:
            try:
                self.client.connect(timeout=timeout)
                return True
            except Exception as e:
                logger.error(f'failed to connect: {e}, next attempt in {self.CONNECT_RETRY_INTERVAL}s')
                killer.wait(self.CONNECT_RETRY_INTERVAL)
        return False

    def run(self):
        killer = GracefulKiller()

        server_thread = threading.Thread(target=self.run_server, daemon=True)
        server_thread.start()

        monitoring = None
        if self.config.monitoring_interval:
            monitoring = Monitoring(
                self.client,
                self.statistics,
                ServerApi(self.config.mysql),
                self.config.monitoring_interval,
            )
            monitoring.print_header()

        if self.connect(killer):
            while not killer.kill_now:
                if not self.client.config.blocking and not self.client.is_connected():
                    logger.info('end of binlog stream reached')
                    break
                if monitoring is not None:
                    monitoring.check()
                killer.wait(1)

        logger.info('stopping runner')
        self.client.disconnect()

        if self.http_server:
            self.http_server.should_exit = True

        server_thread.join()

        logger.info('stopped')
