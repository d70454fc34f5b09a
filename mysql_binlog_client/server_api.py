"""Side channel SQL access to the server the client replicates from.

The replication connection is busy streaming events, so monitoring queries go
through a small mysql-connector connection pool instead.
"""

from contextlib import contextmanager
from logging import getLogger

from mysql.connector import Error as MySQLError
from mysql.connector.pooling import MySQLConnectionPool

from .config import MysqlSettings

logger = getLogger(__name__)


class PooledConnection:
    """Context manager for pooled MySQL connections"""

    def __init__(self, pool: MySQLConnectionPool):
        self.pool = pool
        self.connection = None
        self.cursor = None

    def __enter__(self):
        try:
            self.connection = self.pool.get_connection()
            self.cursor = self.connection.cursor()
            return self.connection, self.cursor
        except MySQLError as e:
            logger.error(f"Failed to get connection from pool: {e}")
            raise

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.cursor:
            self.cursor.close()
        if self.connection:
            self.connection.close()  # back to the pool

        if exc_type is not None:
            logger.error(f"Error in pooled connection: {exc_val}")


class ServerApi:
    def __init__(self, mysql_settings: MysqlSettings):
        self.mysql_settings = mysql_settings
        try:
            self.connection_pool = MySQLConnectionPool(
                pool_name=mysql_settings.pool_name,
                pool_size=mysql_settings.pool_size,
                pool_reset_session=True,
                **mysql_settings.get_connection_config(),
            )
        except MySQLError as e:
            logger.error(f"Failed to create connection pool '{mysql_settings.pool_name}': {e}")
            raise
        logger.info(
            f"ServerApi connected to {mysql_settings.host}:{mysql_settings.port} "
            f"using pool '{mysql_settings.pool_name}' ({mysql_settings.pool_size} connections)"
        )

    @contextmanager
    def get_connection(self):
        with PooledConnection(self.connection_pool) as (connection, cursor):
            yield connection, cursor

    def get_binlog_files(self):
        with self.get_connection() as (connection, cursor):
            cursor.execute("SHOW BINARY LOGS")
            res = cursor.fetchall()
            return [x[0] for x in res]

    def get_last_binlog_file(self):
        files = sorted(self.get_binlog_files(), key=binlog_number)
        return files[-1] if files else None

    def get_server_id(self):
        with self.get_connection() as (connection, cursor):
            cursor.execute("SELECT @@server_id")
            return cursor.fetchone()[0]


def binlog_number(binlog_filename: str) -> int:
    return int(binlog_filename.split('.')[-1])
