import threading
from logging import getLogger

from pymysqlreplication.gtid import Gtid, GtidSet

from .event import EventType, internal_data


logger = getLogger(__name__)


MIN_BINLOG_POSITION = 4


def _parse_gtid_set(gtid_set: str) -> GtidSet:
    # server uuids are compared as strings, keep them in the case mysql prints them
    return GtidSet(gtid_set.strip().lower())


class PositionTracker:
    """Binlog file / position and GTID state of one client.

    binlog_filename and binlog_position are written by the stream reader only
    and read without locking. The GTID set has its own lock since anyone may
    read it while the reader commits transactions into it.
    """

    def __init__(
        self,
        binlog_filename: str = None,
        binlog_position: int = MIN_BINLOG_POSITION,
        gtid_set: str = None,
        gtid_set_fallback_to_purged: bool = False,
        use_binlog_filename_position_in_gtid_mode: bool = False,
    ):
        self.binlog_filename = binlog_filename
        self.binlog_position = binlog_position
        self.gtid_set_fallback_to_purged = gtid_set_fallback_to_purged
        self.use_binlog_filename_position_in_gtid_mode = use_binlog_filename_position_in_gtid_mode
        self._gtid_lock = threading.Lock()
        self._gtid_set = None
        # gtid of the transaction in flight, not committed into the set yet
        self.gtid = None
        self.tx = False
        if gtid_set is not None:
            self.set_gtid_set(gtid_set)

    @property
    def gtid_set(self):
        with self._gtid_lock:
            return str(self._gtid_set) if self._gtid_set is not None else None

    def set_gtid_set(self, gtid_set: str):
        """Switch to GTID mode (None switches back to file / position mode).

        With no binlog filename the stream starts from the oldest binlog
        the server still has, the GTID set tells the server what to skip.
        """
        if gtid_set is not None and self.binlog_filename is None:
            self.binlog_filename = ''
        with self._gtid_lock:
            self._gtid_set = _parse_gtid_set(gtid_set) if gtid_set is not None else None

    def is_gtid_mode(self) -> bool:
        with self._gtid_lock:
            return self._gtid_set is not None

    def resolve_start(self, fetch_gtid_purged, fetch_master_status):
        """Fill in what the server has to tell us before the dump request.

        fetch_gtid_purged() -> str and fetch_master_status() -> (filename, position)
        are only called when needed.
        """
        if self.binlog_filename == '':
            with self._gtid_lock:
                use_purged = (
                    self._gtid_set is not None and
                    str(self._gtid_set) == '' and
                    self.gtid_set_fallback_to_purged
                )
            if use_purged:
                gtid_purged = fetch_gtid_purged()
                logger.info(f'gtid set is empty, starting from gtid_purged: {gtid_purged}')
                with self._gtid_lock:
                    self._gtid_set = _parse_gtid_set(gtid_purged)

        if self.binlog_filename is None:
            self.binlog_filename, self.binlog_position = fetch_master_status()

        if self.binlog_position < MIN_BINLOG_POSITION:
            logger.warning(
                f'Binary log position adjusted from {self.binlog_position} to {MIN_BINLOG_POSITION}'
            )
            self.binlog_position = MIN_BINLOG_POSITION

    def reset_transaction_state(self):
        self.gtid = None
        self.tx = False

    def update_position(self, event):
        header = event.header
        if header.event_type == EventType.ROTATE:
            data = internal_data(event.data)
            self.binlog_filename = data.binlog_filename
            self.binlog_position = data.binlog_position
        # TABLE_MAP keeps the position so a reconnect starts at the table map and the
        # table id cache is rebuilt before the row events that use it
        elif header.event_type != EventType.TABLE_MAP and header.next_position > 0:
            self.binlog_position = header.next_position

    def update_gtid_set(self, event):
        if not self.is_gtid_mode():
            return

        event_type = event.header.event_type
        if event_type == EventType.GTID:
            self.gtid = internal_data(event.data).gtid
        elif event_type == EventType.XID:
            self._commit_gtid()
            self.tx = False
        elif event_type == EventType.QUERY:
            sql = internal_data(event.data).sql
            if sql is None:
                return
            if sql == 'BEGIN':
                self.tx = True
            elif sql in ('COMMIT', 'ROLLBACK'):
                self._commit_gtid()
                self.tx = False
            elif not self.tx:
                # statement outside of a transaction, usually DDL
                self._commit_gtid()

    def _commit_gtid(self):
        if self.gtid is None:
            return
        gtid = Gtid(self.gtid.lower())
        with self._gtid_lock:
            if gtid not in self._gtid_set:
                self._gtid_set = self._gtid_set + gtid
