from pathlib import Path

import pytest

from mysql_binlog_client.config import ClientConfig, Settings, SslMode


CONFIG_FILE = Path(__file__).parent / 'tests_config_binlog_client.yaml'

MYSQL_ENV_VARS = ['MYSQL_HOST', 'MYSQL_PORT', 'MYSQL_USER', 'MYSQL_PASSWORD', 'MYSQL_SCHEMA']


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in MYSQL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
def test_env_vars_override_config(monkeypatch):
    monkeypatch.setenv('MYSQL_HOST', 'mysql.env.host')
    monkeypatch.setenv('MYSQL_PORT', '8306')
    monkeypatch.setenv('MYSQL_USER', 'env_mysql_user')
    monkeypatch.setenv('MYSQL_PASSWORD', 'env_mysql_pass')
    monkeypatch.setenv('MYSQL_SCHEMA', 'env_schema')

    settings = Settings()
    settings.load(str(CONFIG_FILE))

    assert settings.mysql.host == 'mysql.env.host'
    assert settings.mysql.port == 8306
    assert settings.mysql.user == 'env_mysql_user'
    assert settings.mysql.password == 'env_mysql_pass'
    assert settings.mysql.schema == 'env_schema'


@pytest.mark.unit
def test_config_without_env_vars():
    settings = Settings()
    settings.load(str(CONFIG_FILE))

    assert settings.mysql.host == 'mysql.local'
    assert settings.mysql.port == 3306
    assert settings.mysql.user == 'mysql_user'
    assert settings.mysql.password == 'mysql_pass'
    assert settings.log_level == 'debug'
    assert settings.debug_log_level
    assert settings.http_port == 9128
    assert settings.monitoring_interval == 10

    config = settings.get_client_config()
    assert config.host == 'mysql.local'
    assert config.username == 'mysql_user'
    assert config.schema == 'shop'
    assert config.ssl_mode == SslMode.PREFERRED
    assert config.server_id == 1001
    assert config.binlog_filename == 'mysql-bin.000003'
    assert config.binlog_position == 154
    assert config.gtid_set is None
    assert config.keep_alive
    assert config.keep_alive_interval == 30
    assert config.heartbeat_interval == 5


@pytest.mark.unit
def test_partial_env_vars_override(monkeypatch):
    monkeypatch.setenv('MYSQL_PASSWORD', 'env_mysql_pass')

    settings = Settings()
    settings.load(str(CONFIG_FILE))

    assert settings.mysql.host == 'mysql.local'
    assert settings.mysql.user == 'mysql_user'
    assert settings.mysql.password == 'env_mysql_pass'
    assert settings.get_client_config().password == 'env_mysql_pass'


@pytest.mark.unit
def test_minimal_config(tmp_path):
    config_file = tmp_path / 'config.yaml'
    config_file.write_text("mysql:\n  host: 'db'\n")

    settings = Settings()
    settings.load(str(config_file))

    config = settings.get_client_config()
    assert config.host == 'db'
    assert config.port == 3306
    assert config.ssl_mode == SslMode.DISABLED
    assert config.binlog_filename is None
    assert config.blocking
    assert settings.log_level == 'info'
    assert settings.monitoring_interval == 0


@pytest.mark.unit
def test_unknown_options_rejected(tmp_path):
    config_file = tmp_path / 'config.yaml'
    config_file.write_text("mysql:\n  host: 'db'\nclickhouse:\n  host: 'ch'\n")

    with pytest.raises(Exception, match='Unsupported config options'):
        Settings().load(str(config_file))


@pytest.mark.unit
@pytest.mark.parametrize('content, error', [
    ("log_level: 'verbose'\n", 'wrong log level'),
    ("mysql:\n  ssl_mode: 'sometimes'\n", 'wrong ssl_mode'),
    ("mysql:\n  port: '3306'\n", 'port should be int'),
    ("binlog_client:\n  server_id: 0\n", 'server_id'),
    ("binlog_client:\n  keep_alive_interval: 0\n", 'keep_alive_interval'),
])
def test_invalid_values(tmp_path, content, error):
    config_file = tmp_path / 'config.yaml'
    config_file.write_text(content)

    with pytest.raises(ValueError, match=error):
        Settings().load(str(config_file))


@pytest.mark.unit
def test_client_config_is_immutable():
    config = ClientConfig(host='db')
    config.validate()
    with pytest.raises(Exception):
        config.host = 'other'


@pytest.mark.unit
def test_ssl_mode_parse():
    assert SslMode.parse('VERIFY_IDENTITY') == SslMode.VERIFY_IDENTITY
    assert SslMode.parse(SslMode.REQUIRED).requires_ssl
    assert not SslMode.PREFERRED.requires_ssl
    with pytest.raises(ValueError):
        SslMode.parse(1)
