import socket
import ssl
import struct
import threading
from logging import getLogger

from .byte_stream import ByteStream
from .config import SslMode
from .errors import BinlogClientError


logger = getLogger(__name__)


# https://dev.mysql.com/doc/internals/en/sending-more-than-16mbyte.html
MAX_PACKET_LENGTH = 16777215


def default_transport_factory(host: str, port: int, timeout: float) -> socket.socket:
    sock = socket.create_connection((host, port), timeout=timeout or None)
    # the replication stream blocks until the server has something to send
    sock.settimeout(None)
    return sock


def default_ssl_context(ssl_mode: SslMode) -> ssl.SSLContext:
    if ssl_mode in (SslMode.VERIFY_CA, SslMode.VERIFY_IDENTITY):
        context = ssl.create_default_context()
        context.check_hostname = ssl_mode == SslMode.VERIFY_IDENTITY
        return context
    # PREFERRED / REQUIRED: encrypt, but trust any certificate
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class PacketChannel:
    """Framed connection to the server.

    Every packet is a 3 byte little-endian payload length, a sequence id and
    the payload. Payloads of MAX_PACKET_LENGTH bytes and longer are split into
    consecutive packets.
    """

    def __init__(self, sock):
        self.socket = sock
        self.input_stream = ByteStream(sock.makefile('rb'))
        self.sequence = 0
        self.authenticated = False
        self.is_ssl = False
        self._closed = False
        self._close_lock = threading.Lock()

    def is_open(self) -> bool:
        return not self._closed

    def read(self) -> bytes:
        length = self.input_stream.read_int(3)
        self.sequence = (self.input_stream.read_byte() + 1) & 0xFF
        payload = self.input_stream.read(length)
        while length == MAX_PACKET_LENGTH:
            length = self.input_stream.read_int(3)
            self.sequence = (self.input_stream.read_byte() + 1) & 0xFF
            payload += self.input_stream.read(length)
        return payload

    def write(self, payload: bytes):
        # commands start a new sequence once the client is logged in
        if self.authenticated:
            self.sequence = 0
        data = b''
        while True:
            chunk, payload = payload[:MAX_PACKET_LENGTH], payload[MAX_PACKET_LENGTH:]
            data += struct.pack('<I', len(chunk))[:3] + bytes([self.sequence]) + chunk
            self.sequence = (self.sequence + 1) & 0xFF
            if len(chunk) < MAX_PACKET_LENGTH:
                break
        try:
            self.socket.sendall(data)
        except OSError as e:
            raise BinlogClientError.transport(f'failed to write to socket: {e}') from e

    def authentication_complete(self):
        self.authenticated = True

    def upgrade_to_ssl(self, ssl_context: ssl.SSLContext, server_hostname: str = None):
        self.input_stream.close()
        try:
            self.socket = ssl_context.wrap_socket(self.socket, server_hostname=server_hostname)
        except OSError as e:
            raise BinlogClientError.transport(f'SSL handshake failed: {e}') from e
        self.input_stream = ByteStream(self.socket.makefile('rb'))
        self.is_ssl = True

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # shutdown wakes up a reader blocked on this socket, close alone does not
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.input_stream.close()
        try:
            self.socket.close()
        except OSError as e:
            logger.debug(f'error closing socket: {e}')
