import time
from logging import getLogger

from .server_api import ServerApi, binlog_number


logger = getLogger(__name__)


class Monitoring:
    """Prints how far the client is behind the server, one '|' separated line per check."""

    HEADER = ('timestamp', 'mysql', 'binlog', 'binlog_diff', 'events')

    def __init__(self, client, statistics, server_api: ServerApi, interval: float):
        self.client = client
        self.statistics = statistics
        self.server_api = server_api
        self.interval = interval
        self.last_check = None

    def get_stats(self) -> list:
        binlog_file_mysql = self.server_api.get_last_binlog_file()
        binlog_file_client = self.client.status().binlog_filename

        diff = ''
        if binlog_file_mysql and binlog_file_client:
            diff = binlog_number(binlog_file_mysql) - binlog_number(binlog_file_client)

        return [
            int(time.time()),
            binlog_file_mysql,
            binlog_file_client,
            diff,
            self.statistics.total_number_of_events_seen,
        ]

    def print_header(self):
        print('|'.join(self.HEADER), flush=True)

    def print_stats(self):
        print('|'.join(map(str, self.get_stats())), flush=True)

    def check(self):
        """Print stats if the interval has passed since the last check."""
        if not self.interval:
            return
        now = time.monotonic()
        if self.last_check is not None and now - self.last_check < self.interval:
            return
        self.last_check = now
        try:
            self.print_stats()
        except Exception as e:
            logger.warning(f'monitoring check failed: {e}')
