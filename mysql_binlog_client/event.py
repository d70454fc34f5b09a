from enum import Enum
from dataclasses import dataclass

from .errors import BinlogClientError


class EventType(Enum):
    UNKNOWN = 0
    START_V3 = 1
    QUERY = 2
    STOP = 3
    ROTATE = 4
    INTVAR = 5
    LOAD = 6
    SLAVE = 7
    CREATE_FILE = 8
    APPEND_BLOCK = 9
    EXEC_LOAD = 10
    DELETE_FILE = 11
    NEW_LOAD = 12
    RAND = 13
    USER_VAR = 14
    FORMAT_DESCRIPTION = 15
    XID = 16
    BEGIN_LOAD_QUERY = 17
    EXECUTE_LOAD_QUERY = 18
    TABLE_MAP = 19
    PRE_GA_WRITE_ROWS = 20
    PRE_GA_UPDATE_ROWS = 21
    PRE_GA_DELETE_ROWS = 22
    WRITE_ROWS_V1 = 23
    UPDATE_ROWS_V1 = 24
    DELETE_ROWS_V1 = 25
    INCIDENT = 26
    HEARTBEAT = 27
    IGNORABLE = 28
    ROWS_QUERY = 29
    WRITE_ROWS = 30
    UPDATE_ROWS = 31
    DELETE_ROWS = 32
    GTID = 33
    ANONYMOUS_GTID = 34
    PREVIOUS_GTIDS = 35
    TRANSACTION_CONTEXT = 36
    VIEW_CHANGE = 37
    XA_PREPARE = 38
    PARTIAL_UPDATE_ROWS = 39
    TRANSACTION_PAYLOAD = 40
    HEARTBEAT_V2 = 41

    @classmethod
    def from_code(cls, code: int) -> 'EventType':
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


class ChecksumType(Enum):
    NONE = 0
    CRC32 = 4

    @property
    def length(self) -> int:
        return self.value

    @classmethod
    def parse(cls, name: str) -> 'ChecksumType':
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise BinlogClientError.server_protocol(f'unsupported binlog checksum {name}') from None


EVENT_HEADER_LENGTH = 19


@dataclass
class EventHeader:
    timestamp: int
    event_type: EventType
    server_id: int
    event_length: int
    next_position: int
    flags: int = 0
    # raw type code, kept for UNKNOWN events
    type_code: int = 0

    @property
    def data_length(self) -> int:
        return self.event_length - EVENT_HEADER_LENGTH


@dataclass
class Event:
    header: EventHeader
    data: object = None

    def __str__(self):
        return f'Event(header={self.header}, data={self.data})'


@dataclass
class RotateEventData:
    binlog_filename: str
    binlog_position: int


@dataclass
class QueryEventData:
    thread_id: int
    execution_time: int
    error_code: int
    database: str
    sql: str


@dataclass
class XidEventData:
    xid: int


@dataclass
class GtidEventData:
    flags: int
    gtid: str


@dataclass
class TableMapEventData:
    table_id: int
    database: str
    table: str


@dataclass
class FormatDescriptionEventData:
    binlog_version: int
    server_version: str
    header_length: int


@dataclass
class HeartbeatEventData:
    binlog_filename: str


@dataclass
class EventDataWrapper:
    """Data produced by a built-in decoder (internal) in front of a custom one (external).

    The client reads the internal value to track its position, listeners get
    the external one.
    """
    internal: object
    external: object


def internal_data(data):
    if isinstance(data, EventDataWrapper):
        return data.internal
    return data


def external_data(data):
    if isinstance(data, EventDataWrapper):
        return data.external
    return data
