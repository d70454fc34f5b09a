"""
MySQL Binlog Client Configuration Management

This module provides the configuration classes for the replication stream client
and for the process that runs it.

Classes:
    SslMode: Transport security negotiation mode
    ClientConfig: Immutable connection / stream configuration of a single client
    MysqlSettings: MySQL server connection section of the settings file
    BinlogClientSettings: Replication stream section of the settings file
    Settings: Main configuration class that loads the YAML settings file

Key Features:
    - YAML-based configuration loading
    - Environment variable overrides for MySQL credentials
    - Type validation and error handling
"""

import os
from dataclasses import dataclass, asdict
from enum import Enum

import yaml


def stype(obj):
    """Get the simple type name of an object.

    Example:
        >>> stype([1, 2, 3])
        'list'
    """
    return type(obj).__name__


class SslMode(Enum):
    DISABLED = 'disabled'
    PREFERRED = 'preferred'
    REQUIRED = 'required'
    VERIFY_CA = 'verify_ca'
    VERIFY_IDENTITY = 'verify_identity'

    @property
    def requires_ssl(self) -> bool:
        return self in (SslMode.REQUIRED, SslMode.VERIFY_CA, SslMode.VERIFY_IDENTITY)

    @classmethod
    def parse(cls, value):
        if isinstance(value, SslMode):
            return value
        if not isinstance(value, str):
            raise ValueError(f"ssl_mode should be string and not {stype(value)}")
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"wrong ssl_mode {value}, expected one of {[m.value for m in cls]}"
            )


@dataclass(frozen=True)
class ClientConfig:
    """Configuration of a single replication stream client.

    The config is immutable: a connect attempt always sees the same values.
    Start position values (binlog_filename, binlog_position, gtid_set) are only
    the initial state of the position tracker, the live position is read from
    the client itself.

    Attributes:
        host: MySQL server hostname or IP address
        port: MySQL server port (default: 3306)
        username: MySQL username for authentication
        password: MySQL password for authentication
        schema: database used during authentication only, nothing is filtered by it
        server_id: replication server id, must be unique across the replication group
        ssl_mode: transport security mode (default: disabled)
        blocking: if False the client disconnects after the last event
        binlog_filename: None resolves the current position on the server,
            "" streams from the oldest binlog the server still has
        binlog_position: position in binlog_filename, adjusted to 4 if lower
        gtid_set: any value but None switches the client to GTID mode
        gtid_set_fallback_to_purged: use gtid_purged when gtid_set is ""
        use_binlog_filename_position_in_gtid_mode: start from
            binlog_filename/binlog_position instead of the oldest binlog in GTID mode
        keep_alive: run the keep alive supervisor while connected
        keep_alive_interval: keep alive check interval, seconds
        heartbeat_interval: server heartbeat period, seconds (0 - disabled).
            Must be less than keep_alive_interval when both are used.
        connect_timeout: connect timeout, seconds (0 - no timeout)

    Example:
        config = ClientConfig(
            host="mysql.example.com",
            username="replicator",
            password="secure_password",
            server_id=1001,
            heartbeat_interval=5,
        )
    """
    host: str = "localhost"
    port: int = 3306
    username: str = "root"
    password: str = ""
    schema: str = None
    server_id: int = 65535
    ssl_mode: SslMode = SslMode.DISABLED
    blocking: bool = True
    binlog_filename: str = None
    binlog_position: int = 4
    gtid_set: str = None
    gtid_set_fallback_to_purged: bool = False
    use_binlog_filename_position_in_gtid_mode: bool = False
    keep_alive: bool = True
    keep_alive_interval: float = 60.0
    heartbeat_interval: float = 0.0
    connect_timeout: float = 3.0

    def validate(self):
        if not isinstance(self.host, str):
            raise ValueError(f"host should be string and not {stype(self.host)}")

        if not isinstance(self.port, int):
            raise ValueError(f"port should be int and not {stype(self.port)}")

        if not isinstance(self.username, str):
            raise ValueError(f"username should be string and not {stype(self.username)}")

        if not isinstance(self.password, str):
            raise ValueError(f"password should be string and not {stype(self.password)}")

        if self.schema is not None and not isinstance(self.schema, str):
            raise ValueError(f"schema should be string or None and not {stype(self.schema)}")

        if not isinstance(self.server_id, int) or not 0 < self.server_id < 2**32:
            raise ValueError(f"server_id should be in range 1..2^32-1, got {self.server_id}")

        if not isinstance(self.ssl_mode, SslMode):
            raise ValueError(f"ssl_mode should be SslMode and not {stype(self.ssl_mode)}")

        if self.binlog_filename is not None and not isinstance(self.binlog_filename, str):
            raise ValueError(
                f"binlog_filename should be string or None and not {stype(self.binlog_filename)}"
            )

        if not isinstance(self.binlog_position, int) or self.binlog_position < 0:
            raise ValueError(
                f"binlog_position should be non-negative integer and not {self.binlog_position}"
            )

        if self.gtid_set is not None and not isinstance(self.gtid_set, str):
            raise ValueError(f"gtid_set should be string or None and not {stype(self.gtid_set)}")

        for name in ('keep_alive_interval', 'heartbeat_interval', 'connect_timeout'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"{name} should be non-negative number and not {value}")

        if self.keep_alive and self.keep_alive_interval <= 0:
            raise ValueError("keep_alive_interval should be positive when keep_alive is on")


@dataclass
class MysqlSettings:
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    schema: str = None
    ssl_mode: str = "disabled"
    # side channel connection pool used by monitoring
    pool_size: int = 2
    pool_name: str = "binlog_client"

    def apply_env_overrides(self):
        if 'MYSQL_HOST' in os.environ:
            self.host = os.environ['MYSQL_HOST']
        if 'MYSQL_PORT' in os.environ:
            self.port = int(os.environ['MYSQL_PORT'])
        if 'MYSQL_USER' in os.environ:
            self.user = os.environ['MYSQL_USER']
        if 'MYSQL_PASSWORD' in os.environ:
            self.password = os.environ['MYSQL_PASSWORD']
        if 'MYSQL_SCHEMA' in os.environ:
            self.schema = os.environ['MYSQL_SCHEMA']

    def validate(self):
        if not isinstance(self.host, str):
            raise ValueError(f"mysql host should be string and not {stype(self.host)}")

        if not isinstance(self.port, int):
            raise ValueError(f"mysql port should be int and not {stype(self.port)}")

        if not isinstance(self.user, str):
            raise ValueError(f"mysql user should be string and not {stype(self.user)}")

        if not isinstance(self.password, str):
            raise ValueError(
                f"mysql password should be string and not {stype(self.password)}"
            )

        if not isinstance(self.pool_size, int) or self.pool_size < 1:
            raise ValueError(
                f"mysql pool_size should be positive integer and not {self.pool_size}"
            )

        SslMode.parse(self.ssl_mode)

    def get_connection_config(self):
        """Connection arguments for the mysql-connector side channel"""
        config = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "autocommit": True,
        }
        if self.schema is not None:
            config["database"] = self.schema
        return config


@dataclass
class BinlogClientSettings:
    server_id: int = 65535
    blocking: bool = True
    binlog_filename: str = None
    binlog_position: int = 4
    gtid_set: str = None
    gtid_set_fallback_to_purged: bool = False
    use_binlog_filename_position_in_gtid_mode: bool = False
    keep_alive: bool = True
    keep_alive_interval: float = 60.0
    heartbeat_interval: float = 0.0
    connect_timeout: float = 3.0


class Settings:
    DEFAULT_LOG_LEVEL = "info"
    DEFAULT_MONITORING_INTERVAL = 0

    def __init__(self):
        self.mysql = MysqlSettings()
        self.binlog_client = BinlogClientSettings()
        self.settings_file = ""
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False
        self.http_host = ""
        self.http_port = 0
        self.monitoring_interval = Settings.DEFAULT_MONITORING_INTERVAL

    def load(self, settings_file):
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f.read()) or {}

        self.settings_file = settings_file
        self.mysql = MysqlSettings(**data.pop("mysql", {}))
        self.binlog_client = BinlogClientSettings(**(data.pop("binlog_client", None) or {}))
        self.log_level = data.pop("log_level", Settings.DEFAULT_LOG_LEVEL)
        self.http_host = data.pop("http_host", "")
        self.http_port = data.pop("http_port", 0)
        self.monitoring_interval = data.pop(
            "monitoring_interval", Settings.DEFAULT_MONITORING_INTERVAL
        )

        if data:
            raise Exception(f"Unsupported config options: {list(data.keys())}")

        self.mysql.apply_env_overrides()
        self.validate()

    def get_client_config(self) -> ClientConfig:
        config = ClientConfig(
            host=self.mysql.host,
            port=self.mysql.port,
            username=self.mysql.user,
            password=self.mysql.password,
            schema=self.mysql.schema,
            ssl_mode=SslMode.parse(self.mysql.ssl_mode),
            **asdict(self.binlog_client),
        )
        config.validate()
        return config

    def validate_log_level(self):
        if self.log_level not in ["critical", "error", "warning", "info", "debug"]:
            raise ValueError(f"wrong log level {self.log_level}")
        if self.log_level == "debug":
            self.debug_log_level = True

    def validate(self):
        self.mysql.validate()
        self.validate_log_level()
        if not isinstance(self.http_port, int):
            raise ValueError(f"http_port should be int and not {stype(self.http_port)}")
        if not isinstance(self.monitoring_interval, (int, float)) or self.monitoring_interval < 0:
            raise ValueError("monitoring_interval should be non-negative number")
        self.get_client_config()
