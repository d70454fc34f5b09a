import struct
import uuid
from logging import getLogger

from .byte_stream import ByteStream
from .errors import BinlogClientError
from .event import (
    EVENT_HEADER_LENGTH,
    ChecksumType,
    Event,
    EventDataWrapper,
    EventHeader,
    EventType,
    FormatDescriptionEventData,
    GtidEventData,
    HeartbeatEventData,
    QueryEventData,
    RotateEventData,
    TableMapEventData,
    XidEventData,
)


logger = getLogger(__name__)


class RawEventDataDecoder:
    def decode(self, data: bytes):
        return data


class RotateEventDataDecoder:
    def decode(self, data: bytes) -> RotateEventData:
        position, = struct.unpack_from('<Q', data, 0)
        return RotateEventData(binlog_filename=data[8:].decode(), binlog_position=position)


class QueryEventDataDecoder:
    # thread id, execution time, schema length, error code, status vars length
    POST_HEADER = struct.Struct('<IIBHH')

    def decode(self, data: bytes) -> QueryEventData:
        thread_id, execution_time, schema_length, error_code, status_vars_length = \
            self.POST_HEADER.unpack_from(data, 0)
        offset = self.POST_HEADER.size + status_vars_length
        database = data[offset:offset + schema_length].decode('utf-8', errors='replace')
        offset += schema_length + 1
        sql = data[offset:].decode('utf-8', errors='replace')
        return QueryEventData(
            thread_id=thread_id,
            execution_time=execution_time,
            error_code=error_code,
            database=database,
            sql=sql,
        )


class XidEventDataDecoder:
    def decode(self, data: bytes) -> XidEventData:
        xid, = struct.unpack_from('<Q', data, 0)
        return XidEventData(xid=xid)


class GtidEventDataDecoder:
    def decode(self, data: bytes) -> GtidEventData:
        flags = data[0]
        sid = uuid.UUID(bytes=bytes(data[1:17]))
        gno, = struct.unpack_from('<q', data, 17)
        return GtidEventData(flags=flags, gtid=f'{sid}:{gno}')


class TableMapEventDataDecoder:
    def decode(self, data: bytes) -> TableMapEventData:
        table_id = int.from_bytes(data[0:6], 'little')
        offset = 8
        schema_length = data[offset]
        database = data[offset + 1:offset + 1 + schema_length].decode()
        offset += 1 + schema_length + 1
        table_length = data[offset]
        table = data[offset + 1:offset + 1 + table_length].decode()
        return TableMapEventData(table_id=table_id, database=database, table=table)


class FormatDescriptionEventDataDecoder:
    def decode(self, data: bytes) -> FormatDescriptionEventData:
        binlog_version, = struct.unpack_from('<H', data, 0)
        server_version = data[2:52].rstrip(b'\0').decode()
        return FormatDescriptionEventData(
            binlog_version=binlog_version,
            server_version=server_version,
            header_length=data[56],
        )


class HeartbeatEventDataDecoder:
    def decode(self, data: bytes) -> HeartbeatEventData:
        return HeartbeatEventData(binlog_filename=data.decode())


class EventDataWrapperDecoder:
    def __init__(self, internal, external):
        self.internal = internal
        self.external = external

    def decode(self, data: bytes) -> EventDataWrapper:
        return EventDataWrapper(
            internal=self.internal.decode(data),
            external=self.external.decode(data),
        )


class EventDeserializer:
    """Default event codec.

    Reads one v4 event (19 byte header + body) from a byte stream and decodes
    its data with the decoder registered for the event type. Types without a
    registered decoder keep their raw body bytes as data.
    """

    HEADER = struct.Struct('<IBIIIH')

    def __init__(self, data_decoders: dict = None):
        self.checksum_type = ChecksumType.NONE
        self.default_data_decoder = RawEventDataDecoder()
        self.data_decoders = {
            EventType.ROTATE: RotateEventDataDecoder(),
            EventType.QUERY: QueryEventDataDecoder(),
            EventType.XID: XidEventDataDecoder(),
            EventType.GTID: GtidEventDataDecoder(),
            EventType.TABLE_MAP: TableMapEventDataDecoder(),
            EventType.FORMAT_DESCRIPTION: FormatDescriptionEventDataDecoder(),
            EventType.HEARTBEAT: HeartbeatEventDataDecoder(),
        }
        if data_decoders:
            self.data_decoders.update(data_decoders)

    def set_checksum_type(self, checksum_type: ChecksumType):
        self.checksum_type = checksum_type

    def get_data_decoder(self, event_type: EventType):
        return self.data_decoders.get(event_type, self.default_data_decoder)

    def set_data_decoder(self, event_type: EventType, decoder):
        self.data_decoders[event_type] = decoder

    def ensure_data_decoder(self, event_type: EventType, decoder_cls):
        """Make sure data of this type goes through decoder_cls.

        A different decoder that is already registered is kept as the
        external one, so listeners still see its output.
        """
        decoder = self.get_data_decoder(event_type)
        if type(decoder) is decoder_cls or isinstance(decoder, EventDataWrapperDecoder):
            return
        logger.debug(f'wrapping {type(decoder).__name__} with {decoder_cls.__name__} for {event_type.name}')
        self.set_data_decoder(event_type, EventDataWrapperDecoder(decoder_cls(), decoder))

    def read_header(self, stream: ByteStream) -> EventHeader:
        timestamp, type_code, server_id, event_length, next_position, flags = \
            self.HEADER.unpack(stream.read(EVENT_HEADER_LENGTH))
        return EventHeader(
            timestamp=timestamp,
            event_type=EventType.from_code(type_code),
            server_id=server_id,
            event_length=event_length,
            next_position=next_position,
            flags=flags,
            type_code=type_code,
        )

    def next_event(self, stream: ByteStream):
        """Next event from the stream, None if the stream has ended."""
        if stream.peek() == -1:
            return None
        header = self.read_header(stream)
        if header.event_length < EVENT_HEADER_LENGTH:
            raise BinlogClientError.event_decode(f'invalid event length {header.event_length}')
        body = stream.read(header.data_length)
        if self.checksum_type.length:
            body = body[:-self.checksum_type.length]
        decoder = self.get_data_decoder(header.event_type)
        try:
            data = decoder.decode(body)
        except Exception as e:
            raise BinlogClientError.event_decode(
                f'failed to decode {header.event_type.name} event data '
                f'(next position {header.next_position}): {e}'
            ) from e
        return Event(header=header, data=data)
