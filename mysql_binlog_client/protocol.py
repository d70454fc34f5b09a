"""
Default wire codec for the client/server protocol.

Packets are exchanged through a PacketChannel, this module only builds and
parses payloads: the v10 greeting, error packets, SSL request, handshake
response (with auth switch and caching_sha2_password fast auth), text
queries with their result sets, COM_PING and the two binlog dump commands.
"""

import struct
from dataclasses import dataclass
from logging import getLogger

# private module, the PyMySQL version range is pinned in pyproject.toml
from pymysql import _auth
from pymysql.constants import CLIENT, COMMAND
from pymysql.protocol import MysqlPacket
from pymysqlreplication.gtid import GtidSet

from .errors import BinlogClientError


logger = getLogger(__name__)


COM_BINLOG_DUMP_GTID = 0x1E

NATIVE_PASSWORD = 'mysql_native_password'
CACHING_SHA2_PASSWORD = 'caching_sha2_password'

OK_MARKER = 0x00
EOF_MARKER = 0xFE
ERROR_MARKER = 0xFF
AUTH_SWITCH_MARKER = 0xFE
AUTH_MORE_DATA_MARKER = 0x01

# caching_sha2_password, second byte of an AuthMoreData packet
FAST_AUTH_SUCCESS = 3
PERFORM_FULL_AUTH = 4


@dataclass
class GreetingPacket:
    protocol_version: int
    server_version: str
    thread_id: int
    scramble: bytes
    server_capabilities: int
    server_collation: int
    server_status: int
    auth_plugin_name: str

    @property
    def supports_ssl(self) -> bool:
        return bool(self.server_capabilities & CLIENT.SSL)

    @classmethod
    def parse(cls, data: bytes) -> 'GreetingPacket':
        i = 0
        protocol_version = data[i]
        i += 1

        end = data.find(b'\0', i)
        server_version = data[i:end].decode('latin1')
        i = end + 1

        thread_id, = struct.unpack_from('<I', data, i)
        i += 4

        scramble = data[i:i + 8]
        i += 9  # scramble part 1 and filler

        capabilities, = struct.unpack_from('<H', data, i)
        i += 2

        collation = status = 0
        salt_length = 0
        if len(data) >= i + 6:
            collation, status, capabilities_high, salt_length = struct.unpack_from('<BHHB', data, i)
            i += 6
            capabilities |= capabilities_high << 16
            # salt_length includes scramble part 1 and the trailing zero
            salt_length = max(12, salt_length - 9)

        # reserved
        i += 10

        if salt_length and len(data) >= i + salt_length:
            scramble += data[i:i + salt_length]
            i += salt_length
        i += 1

        auth_plugin_name = ''
        if capabilities & CLIENT.PLUGIN_AUTH and len(data) > i:
            end = data.find(b'\0', i)
            auth_plugin_name = data[i:end if end >= 0 else None].decode()

        return cls(
            protocol_version=protocol_version,
            server_version=server_version,
            thread_id=thread_id,
            scramble=bytes(scramble),
            server_capabilities=capabilities,
            server_collation=collation,
            server_status=status,
            auth_plugin_name=auth_plugin_name,
        )


class MysqlProtocol:

    BASE_CAPABILITIES = (
        CLIENT.LONG_PASSWORD | CLIENT.LONG_FLAG | CLIENT.PROTOCOL_41 |
        CLIENT.TRANSACTIONS | CLIENT.SECURE_CONNECTION | CLIENT.PLUGIN_AUTH
    )

    def parse_error(self, payload: bytes) -> BinlogClientError:
        """Server protocol error from an error packet payload (marker byte excluded)."""
        code, = struct.unpack_from('<H', payload, 0)
        if payload[2:3] == b'#':
            sql_state = payload[3:8].decode()
            message = payload[8:]
        else:
            sql_state = None
            message = payload[2:]
        return BinlogClientError.server_protocol(
            message.decode('utf-8', errors='replace'), code=code, sql_state=sql_state,
        )

    def check_error(self, packet: bytes):
        if packet and packet[0] == ERROR_MARKER:
            raise self.parse_error(packet[1:])

    def read_greeting(self, channel) -> GreetingPacket:
        packet = channel.read()
        self.check_error(packet)
        greeting = GreetingPacket.parse(packet)
        logger.debug(
            f'server greeting: version {greeting.server_version}, thread id {greeting.thread_id}, '
            f'auth plugin {greeting.auth_plugin_name}'
        )
        return greeting

    def client_capabilities(self, schema: str = None, ssl: bool = False) -> int:
        capabilities = self.BASE_CAPABILITIES
        if schema:
            capabilities |= CLIENT.CONNECT_WITH_DB
        if ssl:
            capabilities |= CLIENT.SSL
        return capabilities

    def write_ssl_request(self, channel, greeting: GreetingPacket, schema: str = None):
        capabilities = self.client_capabilities(schema, ssl=True)
        channel.write(
            struct.pack('<IIB', capabilities, 0, greeting.server_collation) + b'\0' * 23
        )

    def scramble(self, plugin_name: str, password: str, salt: bytes) -> bytes:
        if not password:
            return b''
        if plugin_name == CACHING_SHA2_PASSWORD:
            return _auth.scramble_caching_sha2(password.encode(), salt)
        if plugin_name in (NATIVE_PASSWORD, ''):
            return _auth.scramble_native_password(password.encode(), salt)
        raise BinlogClientError.authentication(f'unsupported authentication plugin {plugin_name}')

    def handshake_response(self, greeting: GreetingPacket, schema, username, password, ssl=False) -> bytes:
        plugin_name = greeting.auth_plugin_name or NATIVE_PASSWORD
        capabilities = self.client_capabilities(schema, ssl)
        data = struct.pack('<IIB', capabilities, 0, greeting.server_collation) + b'\0' * 23
        data += username.encode() + b'\0'
        auth_response = self.scramble(plugin_name, password, greeting.scramble)
        data += struct.pack('B', len(auth_response)) + auth_response
        if schema:
            data += schema.encode() + b'\0'
        data += plugin_name.encode() + b'\0'
        return data

    def authenticate(self, channel, greeting: GreetingPacket, schema, username, password):
        plugin_name = greeting.auth_plugin_name or NATIVE_PASSWORD
        channel.write(self.handshake_response(greeting, schema, username, password, ssl=channel.is_ssl))

        while True:
            packet = channel.read()
            marker = packet[0]

            if marker == OK_MARKER:
                return

            if marker == ERROR_MARKER:
                error = self.parse_error(packet[1:])
                raise BinlogClientError.authentication(
                    error.message, code=error.code, sql_state=error.sql_state,
                )

            if marker == AUTH_SWITCH_MARKER:
                end = packet.find(b'\0', 1)
                plugin_name = packet[1:end].decode()
                salt = packet[end + 1:].rstrip(b'\0')
                logger.debug(f'server requested auth switch to {plugin_name}')
                channel.write(self.scramble(plugin_name, password, salt))
                continue

            if marker == AUTH_MORE_DATA_MARKER and plugin_name == CACHING_SHA2_PASSWORD:
                if packet[1:2] == bytes([FAST_AUTH_SUCCESS]):
                    continue
                if packet[1:2] == bytes([PERFORM_FULL_AUTH]):
                    if not channel.is_ssl:
                        raise BinlogClientError.authentication(
                            'caching_sha2_password full authentication requires SSL'
                        )
                    channel.write(password.encode() + b'\0')
                    continue

            raise BinlogClientError.authentication(
                f'unexpected packet 0x{marker:02x} during authentication'
            )

    def send_query(self, channel, sql: str):
        channel.write(bytes([COMMAND.COM_QUERY]) + sql.encode())

    def read_result_set(self, channel) -> list:
        packet = channel.read()
        self.check_error(packet)
        if packet[0] == OK_MARKER:
            return []

        column_count = MysqlPacket(packet, 'utf-8').read_length_encoded_integer()
        # column definitions
        while not MysqlPacket(channel.read(), 'utf-8').is_eof_packet():
            pass

        rows = []
        while True:
            row_packet = MysqlPacket(channel.read(), 'utf-8')
            if row_packet.is_eof_packet():
                break
            self.check_error(row_packet.get_all_data())
            row = []
            for _ in range(column_count):
                value = row_packet.read_length_coded_string()
                row.append(value.decode('utf-8', errors='replace') if value is not None else None)
            rows.append(row)
        return rows

    def query(self, channel, sql: str) -> list:
        """Run a text query, rows come back as lists of str / None."""
        self.send_query(channel, sql)
        return self.read_result_set(channel)

    def execute(self, channel, sql: str):
        self.send_query(channel, sql)
        self.check_error(channel.read())

    def ping(self, channel):
        channel.write(bytes([COMMAND.COM_PING]))

    def request_binlog_stream(self, channel, server_id: int, binlog_filename: str, binlog_position: int):
        # the position field is 4 bytes wide
        channel.write(
            struct.pack('<BIHI', COMMAND.COM_BINLOG_DUMP, binlog_position & 0xFFFFFFFF, 0, server_id) +
            binlog_filename.encode()
        )

    def request_binlog_stream_gtid(self, channel, server_id: int, binlog_filename: str,
                                   binlog_position: int, gtid_set: str):
        filename = binlog_filename.encode()
        encoded_gtid_set = GtidSet(gtid_set).encoded()
        channel.write(
            struct.pack('<BHII', COM_BINLOG_DUMP_GTID, 0, server_id, len(filename)) +
            filename +
            struct.pack('<QI', binlog_position, len(encoded_gtid_set)) +
            encoded_gtid_set
        )
