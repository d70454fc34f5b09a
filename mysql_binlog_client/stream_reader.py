from logging import getLogger

from .byte_stream import ByteStream
from .channel import MAX_PACKET_LENGTH
from .errors import BinlogClientError, is_transport_failure
from .event import Event, EventDataWrapper, external_data
from .protocol import EOF_MARKER, ERROR_MARKER


logger = getLogger(__name__)


def read_packet_split_in_chunks(stream: ByteStream, packet_length: int) -> bytes:
    """Rest of a packet that was split because it hit MAX_PACKET_LENGTH.

    packet_length is what is left of the first chunk, the following chunks
    are read until one of them is shorter than the maximum.
    """
    result = bytearray(stream.read(packet_length))
    while True:
        chunk_length = stream.read_int(3)
        stream.skip(1)  # sequence
        result += stream.read(chunk_length)
        if chunk_length != MAX_PACKET_LENGTH:
            break
    return bytes(result)


def external_event(event: Event) -> Event:
    if isinstance(event.data, EventDataWrapper):
        return Event(header=event.header, data=external_data(event.data))
    return event


class StreamReader:
    """Reads event packets of one connection until it is closed or the stream ends.

    Runs on the thread that called connect(), while the client holds the
    connect lock.
    """

    def __init__(self, client, channel):
        self.client = client
        self.channel = channel

    def run(self):
        client = self.client
        stream = self.channel.input_stream
        complete_shutdown = False
        try:
            while stream.peek() != -1:
                packet_length = stream.read_int(3)
                stream.skip(1)  # sequence
                marker = stream.read_byte()
                if marker == ERROR_MARKER:
                    raise client.protocol.parse_error(stream.read(packet_length - 1))
                if marker == EOF_MARKER and not client.config.blocking:
                    complete_shutdown = True
                    break

                # the whole packet is consumed up front so a broken event cannot desync the stream
                if packet_length == MAX_PACKET_LENGTH:
                    packet = read_packet_split_in_chunks(stream, packet_length - 1)
                else:
                    packet = stream.read(packet_length - 1)
                try:
                    event = client.event_deserializer.next_event(ByteStream.from_bytes(packet))
                    if event is None:
                        raise BinlogClientError.event_decode('empty event packet')
                except Exception as e:
                    if is_transport_failure(e):
                        raise
                    if client.is_connected():
                        client.listeners.notify_event_deserialization_failure(client, e)
                    continue

                if client.is_connected():
                    client.keep_alive.mark_event_seen()
                    client.position.update_gtid_set(event)
                    client.listeners.notify_event(external_event(event))
                    client.position.update_position(event)
        except Exception as e:
            if client.is_connected():
                logger.debug(f'binlog stream interrupted: {e}')
                client.listeners.notify_communication_failure(client, e)
        finally:
            if client.is_connected():
                if complete_shutdown:
                    # end of stream in non-blocking mode, keep alive must not reconnect
                    client.disconnect()
                else:
                    client.disconnect_channel()
