import io

from .errors import BinlogClientError


class ByteStream:
    """Little-endian reader over a binary file object (a socket file or a buffer).

    Reads are exact: a short read means the peer went away and is reported
    as a transport error.
    """

    def __init__(self, raw):
        self.raw = raw
        self._peeked = b''

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ByteStream':
        return cls(io.BytesIO(data))

    def _raw_read(self, length):
        try:
            return self.raw.read(length)
        except (OSError, ValueError) as e:
            raise BinlogClientError.transport(f'failed to read from stream: {e}') from e

    def peek(self) -> int:
        """Next byte without consuming it, -1 on end of stream."""
        if not self._peeked:
            self._peeked = self._raw_read(1) or b''
        if not self._peeked:
            return -1
        return self._peeked[0]

    def read(self, length: int) -> bytes:
        if length <= 0:
            return b''
        data = self._peeked
        self._peeked = b''
        while len(data) < length:
            chunk = self._raw_read(length - len(data))
            if not chunk:
                raise BinlogClientError.transport(
                    f'unexpected end of stream, expected {length} bytes, got {len(data)}'
                )
            data += chunk
        return data

    def read_int(self, length: int) -> int:
        return int.from_bytes(self.read(length), 'little')

    def read_byte(self) -> int:
        return self.read(1)[0]

    def skip(self, length: int):
        self.read(length)

    def close(self):
        try:
            self.raw.close()
        except (OSError, ValueError):
            pass
