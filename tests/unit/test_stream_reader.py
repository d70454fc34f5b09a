import struct

import pytest

from mysql_binlog_client.byte_stream import ByteStream
from mysql_binlog_client.client import BinaryLogClient
from mysql_binlog_client.config import ClientConfig
from mysql_binlog_client.deserializer import EventDeserializer, QueryEventDataDecoder
from mysql_binlog_client.errors import ErrorKind
from mysql_binlog_client.event import EventType
from mysql_binlog_client.listeners import EventListener, LifecycleListener
from mysql_binlog_client.stream_reader import StreamReader, read_packet_split_in_chunks
from tests.utils.fake_server import (
    MAX_PACKET_LENGTH,
    eof_packet,
    error_packet,
    event_bytes,
    frame,
    query_event,
    rotate_event,
    table_map_event,
    xid_event,
)

ROWS_QUERY_EVENT = 29


class BytesChannel:
    def __init__(self, data):
        self.input_stream = ByteStream.from_bytes(data)
        self.closed = False

    def is_open(self):
        return not self.closed

    def close(self):
        self.closed = True


class Recorder(EventListener, LifecycleListener):
    def __init__(self):
        self.events = []
        self.calls = []

    def on_event(self, event):
        self.events.append(event)

    def on_communication_failure(self, client, exc):
        self.calls.append(('communication_failure', exc))

    def on_event_deserialization_failure(self, client, exc):
        self.calls.append(('deserialization_failure', exc))


def event_packets(*events):
    return b''.join(frame(b'\x00' + event, sequence) for sequence, event in enumerate(events, start=1))


def run_stream(data, blocking=True, event_deserializer=None):
    client = BinaryLogClient(
        ClientConfig(binlog_filename='mysql-bin.000001', keep_alive=False, blocking=blocking),
        event_deserializer=event_deserializer,
    )
    recorder = Recorder()
    client.register_event_listener(recorder)
    client.register_lifecycle_listener(recorder)
    client.channel = BytesChannel(data)
    client.connected = True
    StreamReader(client, client.channel).run()
    return client, recorder


@pytest.mark.unit
def test_events_dispatched_and_position_tracked():
    data = event_packets(
        rotate_event('mysql-bin.000002', 4),
        query_event('BEGIN', next_position=200),
        table_map_event(12, 'shop', 'orders', next_position=300),
        xid_event(1, next_position=400),
    )

    client, recorder = run_stream(data)

    assert [e.header.event_type for e in recorder.events] == [
        EventType.ROTATE, EventType.QUERY, EventType.TABLE_MAP, EventType.XID,
    ]
    assert client.binlog_filename == 'mysql-bin.000002'
    assert client.binlog_position == 400
    # end of data, the channel is closed and the client is no longer connected
    assert not client.is_connected()
    assert client.channel.closed
    assert recorder.calls == []


@pytest.mark.unit
def test_decode_failure_is_reported_and_skipped():
    data = event_packets(
        event_bytes(4, b'\x01'),
        xid_event(1, next_position=400),
    )

    client, recorder = run_stream(data)

    assert [e.header.event_type for e in recorder.events] == [EventType.XID]
    assert [name for name, _ in recorder.calls] == ['deserialization_failure']
    assert recorder.calls[0][1].kind == ErrorKind.EVENT_DECODE
    assert client.binlog_position == 400


@pytest.mark.unit
def test_short_event_length_skips_whole_packet():
    # the header claims 10 bytes, less than the header itself
    broken = struct.pack('<IBIIIH', 1700000000, 16, 1, 10, 300, 0) + b'\x01\x02\x03\x04\x05\x06\x07\x08'
    data = event_packets(broken, xid_event(1, next_position=400))
    data += frame(b'\x00', 3)
    data += event_packets(xid_event(2, next_position=500))

    client, recorder = run_stream(data)

    assert [e.data.xid for e in recorder.events] == [1, 2]
    assert [name for name, _ in recorder.calls] == ['deserialization_failure', 'deserialization_failure']
    assert 'invalid event length 10' in str(recorder.calls[0][1])
    assert all(error.kind == ErrorKind.EVENT_DECODE for _, error in recorder.calls)
    assert client.binlog_position == 500


@pytest.mark.unit
def test_error_packet_ends_stream():
    data = event_packets(xid_event(1, next_position=400))
    data += frame(error_packet(1236, 'Could not find first log file name in binary log index file'), 2)
    data += event_packets(xid_event(2, next_position=500))

    client, recorder = run_stream(data)

    assert len(recorder.events) == 1
    name, error = recorder.calls[0]
    assert name == 'communication_failure'
    assert error.kind == ErrorKind.SERVER_PROTOCOL
    assert error.code == 1236
    assert client.binlog_position == 400
    assert not client.is_connected()


@pytest.mark.unit
def test_truncated_stream_is_communication_failure():
    data = event_packets(xid_event(1, next_position=400))[:-4]

    client, recorder = run_stream(data)

    assert recorder.events == []
    name, error = recorder.calls[0]
    assert name == 'communication_failure'
    assert error.kind == ErrorKind.TRANSPORT


@pytest.mark.unit
def test_eof_in_non_blocking_mode_is_complete_shutdown():
    data = event_packets(xid_event(1, next_position=400)) + frame(eof_packet(), 2)
    data += event_packets(xid_event(2, next_position=500))

    client, recorder = run_stream(data, blocking=False)

    assert len(recorder.events) == 1
    assert recorder.calls == []
    assert not client.is_connected()
    assert client.channel.closed


@pytest.mark.unit
def test_listeners_get_external_data():
    class UpperCaseSqlDecoder:
        def decode(self, data):
            return QueryEventDataDecoder().decode(data).sql.upper()

    deserializer = EventDeserializer()
    deserializer.set_data_decoder(EventType.QUERY, UpperCaseSqlDecoder())
    deserializer.ensure_data_decoder(EventType.QUERY, QueryEventDataDecoder)

    client, recorder = run_stream(event_packets(query_event('drop table t', next_position=90)), event_deserializer=deserializer)

    assert recorder.events[0].data == 'DROP TABLE T'
    assert client.binlog_position == 90


@pytest.mark.unit
def test_packet_split_in_chunks():
    body_length = MAX_PACKET_LENGTH + 100 - 1 - 19
    event = event_bytes(ROWS_QUERY_EVENT, b'x' * (body_length - 1) + b'y', next_position=16777400)
    payload = b'\x00' + event
    assert len(payload) == MAX_PACKET_LENGTH + 100

    data = frame(payload, 1)
    assert int.from_bytes(data[:3], 'little') == MAX_PACKET_LENGTH
    assert int.from_bytes(data[MAX_PACKET_LENGTH + 4:MAX_PACKET_LENGTH + 7], 'little') == 100

    client, recorder = run_stream(data)

    expected = EventDeserializer().next_event(ByteStream.from_bytes(event))
    assert len(recorder.events) == 1
    assert recorder.events[0].header == expected.header
    assert recorder.events[0].data == expected.data
    assert client.binlog_position == 16777400


@pytest.mark.unit
def test_read_packet_split_in_chunks_with_exact_multiple():
    # a payload of exactly MAX_PACKET_LENGTH is followed by an empty chunk
    stream = ByteStream.from_bytes(b'a' * 10 + (b'\0\0\0\x02'))
    assert read_packet_split_in_chunks(stream, 10) == b'a' * 10
    assert stream.peek() == -1
