"""Shared test fixtures and utilities for mysql-binlog-client tests"""

import os
import time

import pytest

from mysql_binlog_client.client import BinaryLogClient
from mysql_binlog_client.config import ClientConfig
from tests.utils.fake_server import FakeMysqlServer

# Live server used by optional tests
MYSQL_HOST = os.environ.get('TEST_MYSQL_HOST', 'localhost')
MYSQL_PORT = int(os.environ.get('TEST_MYSQL_PORT', '9306'))
MYSQL_USER = os.environ.get('TEST_MYSQL_USER', 'root')
MYSQL_PASSWORD = os.environ.get('TEST_MYSQL_PASSWORD', 'admin')


def assert_wait(condition, max_wait_time=5.0, retry_interval=0.02):
    """Wait for a condition to be true, fail with the last error after max_wait_time"""
    max_time = time.time() + max_wait_time
    while time.time() < max_time:
        try:
            if condition():
                return
        except Exception:
            pass
        time.sleep(retry_interval)
    assert condition()


def make_client(server: FakeMysqlServer, **config_values) -> BinaryLogClient:
    config_values.setdefault('keep_alive', False)
    config = ClientConfig(host='fake-mysql', port=3306, username='repl', password='secret', **config_values)
    return BinaryLogClient(config, transport_factory=server.transport_factory)


@pytest.fixture
def clients():
    """Collects clients created by a test and disconnects them afterwards"""
    created = []
    yield created
    for client in created:
        client.disconnect()


# Pytest markers
def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "optional: mark test as optional (needs a running MySQL server)"
    )
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")
