from enum import Enum


class ErrorKind(Enum):
    AUTHENTICATION = 'authentication'
    SERVER_PROTOCOL = 'server_protocol'
    TRANSPORT = 'transport'
    TIMEOUT = 'timeout'
    EVENT_DECODE = 'event_decode'


class BinlogClientError(Exception):
    """Error raised by the binlog client.

    The kind tells the caller what failed. Server side errors (both during
    authentication and while streaming) also carry the numeric MySQL error
    code and the SQL state.
    """

    def __init__(self, kind: ErrorKind, message: str, code: int = None, sql_state: str = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.sql_state = sql_state

    def __str__(self):
        if self.code is None:
            return self.message
        return f'{self.message} (code: {self.code}, sql state: {self.sql_state})'

    @classmethod
    def authentication(cls, message, code=None, sql_state=None):
        return cls(ErrorKind.AUTHENTICATION, message, code, sql_state)

    @classmethod
    def server_protocol(cls, message, code=None, sql_state=None):
        return cls(ErrorKind.SERVER_PROTOCOL, message, code, sql_state)

    @classmethod
    def transport(cls, message):
        return cls(ErrorKind.TRANSPORT, message)

    @classmethod
    def timeout(cls, message):
        return cls(ErrorKind.TIMEOUT, message)

    @classmethod
    def event_decode(cls, message):
        return cls(ErrorKind.EVENT_DECODE, message)


class ConnectInProgressError(RuntimeError):
    pass


def is_transport_failure(error: BaseException) -> bool:
    """True if the error, or anything it was raised from, is a broken connection."""
    while error is not None:
        if isinstance(error, BinlogClientError) and error.kind == ErrorKind.TRANSPORT:
            return True
        if isinstance(error, (OSError, EOFError)):
            return True
        error = error.__cause__
    return False
