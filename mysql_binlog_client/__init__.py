import importlib.metadata

from .client import BinaryLogClient, ClientStatus
from .config import ClientConfig, SslMode
from .errors import BinlogClientError, ConnectInProgressError, ErrorKind
from .event import Event, EventHeader, EventType
from .listeners import EventListener, LifecycleListener
from .statistics import BinaryLogClientStatistics

try:
    __version__ = importlib.metadata.version("mysql-binlog-client")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"  # fallback version
