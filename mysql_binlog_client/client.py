"""
MySQL binlog replication client.

BinaryLogClient connects to a MySQL server as a replica, requests the binlog
stream from a file / position or a GTID set and hands every event to the
registered listeners. The live position is tracked while events arrive so a
reconnect (explicit or by the keep alive supervisor) resumes where the
stream stopped.

Example:
    client = BinaryLogClient(ClientConfig(host='localhost', username='repl', password='...'))
    client.register_event_listener(MyListener())
    client.connect()  # blocks until disconnected
"""

import threading
import time
from concurrent.futures import Future, InvalidStateError, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from logging import getLogger

from .channel import PacketChannel, default_ssl_context, default_transport_factory
from .config import ClientConfig
from .deserializer import (
    EventDeserializer,
    GtidEventDataDecoder,
    QueryEventDataDecoder,
    RotateEventDataDecoder,
)
from .errors import BinlogClientError, ConnectInProgressError
from .event import ChecksumType, EventType
from .handshake import HandshakeNegotiator
from .keepalive import KeepAliveSupervisor
from .listeners import LifecycleListener, ListenerRegistry
from .position import PositionTracker
from .protocol import MysqlProtocol
from .stream_reader import StreamReader
from .utils import new_daemon_thread


logger = getLogger(__name__)


# MySQL 8.4 dropped SHOW MASTER STATUS
ER_PARSE_ERROR = 1064


@dataclass
class ClientStatus:
    binlog_filename: str
    binlog_position: int
    gtid_set: str
    connection_id: int
    master_server_id: int
    connected: bool


def _resolve(future: Future, exception: BaseException = None):
    try:
        if exception is None:
            future.set_result(True)
        else:
            future.set_exception(exception)
    except InvalidStateError:
        pass


class _ConnectSignal(LifecycleListener):
    def __init__(self, future: Future):
        self.future = future

    def on_connect(self, client):
        _resolve(self.future)


class DisconnectWatchdog:
    """Closes the channel unless cancelled within timeout seconds."""

    def __init__(self, channel, timeout: float):
        self.channel = channel
        self.timeout = max(timeout, 0)
        self.fired = False
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._thread = None

    def start(self, thread_factory, name: str) -> 'DisconnectWatchdog':
        self._thread = thread_factory(self.run, name)
        self._thread.start()
        return self

    def expired(self) -> bool:
        return not self._cancelled.wait(self.timeout)

    def run(self):
        if not self.expired():
            return
        with self._lock:
            if self._cancelled.is_set():
                return
            self.fired = True
        logger.warning(f'Failed to establish connection in {self.timeout:.3f}s. Forcing disconnect.')
        self.channel.close()

    def cancel(self) -> bool:
        """Stop the watchdog and wait for it to finish, True if it closed the channel."""
        with self._lock:
            self._cancelled.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        return self.fired


class BinaryLogClient:

    def __init__(
        self,
        config: ClientConfig,
        event_deserializer=None,
        protocol=None,
        transport_factory=default_transport_factory,
        ssl_context_factory=default_ssl_context,
        thread_factory=new_daemon_thread,
    ):
        config.validate()
        self.config = config
        self.event_deserializer = event_deserializer or EventDeserializer()
        self.protocol = protocol or MysqlProtocol()
        self.transport_factory = transport_factory
        self.thread_factory = thread_factory
        self.negotiator = HandshakeNegotiator(config, self.protocol, ssl_context_factory)
        self.listeners = ListenerRegistry()
        self.position = PositionTracker(
            binlog_filename=config.binlog_filename,
            binlog_position=config.binlog_position,
            gtid_set=config.gtid_set,
            gtid_set_fallback_to_purged=config.gtid_set_fallback_to_purged,
            use_binlog_filename_position_in_gtid_mode=config.use_binlog_filename_position_in_gtid_mode,
        )
        self.keep_alive = KeepAliveSupervisor(self, thread_factory)

        # re-entrant: a listener running on the reader thread may call disconnect()
        self._connect_lock = threading.RLock()
        self.channel = None
        self.connected = False
        self.connection_id = None
        self.master_server_id = None

    def __repr__(self):
        return f'BinaryLogClient({self.config.host}:{self.config.port})'

    @property
    def binlog_filename(self):
        return self.position.binlog_filename

    @property
    def binlog_position(self):
        return self.position.binlog_position

    @property
    def gtid_set(self):
        return self.position.gtid_set

    def register_event_listener(self, listener):
        self.listeners.register_event_listener(listener)

    def unregister_event_listener(self, listener_or_class):
        self.listeners.unregister_event_listener(listener_or_class)

    def register_lifecycle_listener(self, listener):
        self.listeners.register_lifecycle_listener(listener)

    def unregister_lifecycle_listener(self, listener_or_class):
        self.listeners.unregister_lifecycle_listener(listener_or_class)

    def is_connected(self) -> bool:
        return self.connected

    def status(self) -> ClientStatus:
        return ClientStatus(
            binlog_filename=self.position.binlog_filename,
            binlog_position=self.position.binlog_position,
            gtid_set=self.position.gtid_set,
            connection_id=self.connection_id,
            master_server_id=self.master_server_id,
            connected=self.connected,
        )

    def connect(self, timeout: float = None):
        """Connect to the replication stream.

        Without a timeout the call blocks until the client is disconnected.
        With a timeout the stream runs on a background thread and the call
        returns as soon as the client is connected, or raises a TIMEOUT error
        when it is not connected in time. The timeout then also bounds opening
        the transport and the handshake.
        """
        if timeout is not None:
            return self._connect_in_background(timeout)
        self._connect(self.config.connect_timeout)

    def _connect(self, connect_timeout: float):
        if not self._connect_lock.acquire(blocking=False):
            raise ConnectInProgressError('BinaryLogClient is already connecting')
        if self.connected:
            self._connect_lock.release()
            raise ConnectInProgressError('BinaryLogClient is already connected')

        notify_disconnect = False
        try:
            generation = self._establish(connect_timeout)
            notify_disconnect = True
            self._on_connected(generation)
            StreamReader(self, self.channel).run()
        finally:
            self._connect_lock.release()
            if notify_disconnect:
                self.listeners.notify_disconnect(self)

    def _establish(self, connect_timeout: float) -> int:
        config = self.config
        generation = self.keep_alive.generation
        watchdog = None
        try:
            try:
                start = time.monotonic()
                self.channel = self._open_channel(connect_timeout)
                if connect_timeout > 0 and not self.keep_alive.is_running():
                    watchdog = DisconnectWatchdog(
                        self.channel, connect_timeout - (time.monotonic() - start),
                    ).start(self.thread_factory, f'blc-disconnect-{config.host}:{config.port}')
                if self.channel.input_stream.peek() == -1:
                    raise BinlogClientError.transport('connection closed by server')
            except (OSError, BinlogClientError) as e:
                raise BinlogClientError.transport(
                    f"Failed to connect to MySQL on {config.host}:{config.port}. "
                    f"Please make sure it's running. ({e})"
                ) from e

            greeting = self.negotiator.negotiate(self.channel)
            self.connection_id = greeting.thread_id
            self.position.resolve_start(self._fetch_gtid_purged, self._fetch_master_status)
            checksum_type = self._fetch_binlog_checksum()
            if checksum_type != ChecksumType.NONE:
                self.protocol.execute(self.channel, 'set @master_binlog_checksum= @@global.binlog_checksum')
            self.event_deserializer.set_checksum_type(checksum_type)
            self._fetch_master_server_id()
            if config.heartbeat_interval > 0:
                self._enable_heartbeat()
            self.position.reset_transaction_state()
            self._request_binlog_stream()
            if watchdog is not None and watchdog.cancel():
                raise BinlogClientError.transport(
                    f'Failed to connect to MySQL on {config.host}:{config.port} in {connect_timeout}s'
                )
        except Exception:
            if watchdog is not None:
                watchdog.cancel()
            self.disconnect_channel()
            raise
        return generation

    def _on_connected(self, keep_alive_generation: int):
        config = self.config
        self.connected = True
        self.keep_alive.mark_event_seen()
        position = self.position.gtid_set
        if position is None:
            position = f'{self.position.binlog_filename}/{self.position.binlog_position}'
        server_id = f'sid:{config.server_id}, ' if config.blocking else ''
        logger.info(
            f'Connected to {config.host}:{config.port} at {position} '
            f'({server_id}cid:{self.connection_id})'
        )
        self.listeners.notify_connect(self)
        if config.keep_alive and not self.keep_alive.is_running():
            self.keep_alive.start(keep_alive_generation)
        self._ensure_event_data_decoders()

    def _open_channel(self, connect_timeout: float) -> PacketChannel:
        sock = self.transport_factory(self.config.host, self.config.port, connect_timeout)
        return PacketChannel(sock)

    def _fetch_gtid_purged(self) -> str:
        rows = self.protocol.query(self.channel, "show global variables like 'gtid_purged'")
        if rows:
            return rows[0][1] or ''
        return ''

    def _fetch_master_status(self):
        try:
            rows = self.protocol.query(self.channel, 'show master status')
        except BinlogClientError as e:
            if e.code != ER_PARSE_ERROR:
                raise
            rows = self.protocol.query(self.channel, 'show binary log status')
        if not rows:
            raise BinlogClientError.server_protocol(
                'Failed to determine binlog filename/position (is binary logging enabled?)'
            )
        return rows[0][0], int(rows[0][1])

    def _fetch_binlog_checksum(self) -> ChecksumType:
        rows = self.protocol.query(self.channel, "show global variables like 'binlog_checksum'")
        if not rows:
            return ChecksumType.NONE
        return ChecksumType.parse(rows[0][1])

    def _fetch_master_server_id(self):
        rows = self.protocol.query(self.channel, 'select @@server_id')
        if rows:
            self.master_server_id = int(rows[0][0])

    def _enable_heartbeat(self):
        period_ns = int(self.config.heartbeat_interval * 1_000_000_000)
        self.protocol.execute(self.channel, f'set @master_heartbeat_period={period_ns}')

    def _request_binlog_stream(self):
        # server id 0 makes the server send EOF at the end of the last binlog
        server_id = self.config.server_id if self.config.blocking else 0
        position = self.position
        gtid_set = position.gtid_set
        if gtid_set is None:
            self.protocol.request_binlog_stream(
                self.channel, server_id, position.binlog_filename, position.binlog_position,
            )
            return
        if position.use_binlog_filename_position_in_gtid_mode:
            binlog_filename, binlog_position = position.binlog_filename, position.binlog_position
        else:
            binlog_filename, binlog_position = '', 4
        self.protocol.request_binlog_stream_gtid(
            self.channel, server_id, binlog_filename, binlog_position, gtid_set,
        )

    def _ensure_event_data_decoders(self):
        self.event_deserializer.ensure_data_decoder(EventType.ROTATE, RotateEventDataDecoder)
        if self.position.is_gtid_mode():
            self.event_deserializer.ensure_data_decoder(EventType.GTID, GtidEventDataDecoder)
            self.event_deserializer.ensure_data_decoder(EventType.QUERY, QueryEventDataDecoder)

    def _connect_in_background(self, timeout: float):
        ready = Future()
        signal = _ConnectSignal(ready)
        self.register_lifecycle_listener(signal)

        def run():
            try:
                self._connect(timeout)
            except BaseException as e:
                logger.debug(f'background connect failed: {e}')
                _resolve(ready, e)
            else:
                _resolve(ready)

        try:
            self.thread_factory(run, f'blc-{self.config.host}:{self.config.port}').start()
            try:
                ready.result(timeout=timeout)
            except FutureTimeoutError:
                self.terminate_connect()
                raise BinlogClientError.timeout(
                    f'BinaryLogClient was unable to connect in {timeout}s'
                )
        finally:
            self.unregister_lifecycle_listener(signal)

    def ping(self):
        channel = self.channel
        if channel is None or not channel.is_open():
            raise BinlogClientError.transport('channel is closed')
        self.protocol.ping(channel)

    def disconnect_channel(self):
        self.connected = False
        channel = self.channel
        if channel is not None and channel.is_open():
            channel.close()

    def terminate_connect(self, stop_event: threading.Event = None):
        """Close the channel and wait until the connect in progress (if any) has let go of the lock.

        stop_event aborts the wait, the keep alive supervisor passes its own
        so that stopping it never waits for a connect that it is racing with.
        """
        while True:
            self.disconnect_channel()
            if self._connect_lock.acquire(timeout=1):
                self._connect_lock.release()
                return
            if stop_event is not None and stop_event.is_set():
                return

    def disconnect(self):
        self.keep_alive.stop()
        self.terminate_connect()
