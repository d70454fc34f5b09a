from unittest.mock import MagicMock, patch

import pytest

from mysql_binlog_client.client import ClientStatus
from mysql_binlog_client.config import MysqlSettings
from mysql_binlog_client.errors import BinlogClientError
from mysql_binlog_client.event import Event, EventHeader, EventType, XidEventData
from mysql_binlog_client.monitoring import Monitoring
from mysql_binlog_client.server_api import ServerApi, binlog_number
from mysql_binlog_client.statistics import BinaryLogClientStatistics


def make_event(event_type, event_length=27):
    header = EventHeader(
        timestamp=1700000000, event_type=event_type, server_id=1,
        event_length=event_length, next_position=500,
    )
    return Event(header, XidEventData(xid=1))


class StubClient:
    def __init__(self, binlog_filename):
        self.binlog_filename = binlog_filename

    def status(self):
        return ClientStatus(
            binlog_filename=self.binlog_filename, binlog_position=4, gtid_set=None,
            connection_id=1, master_server_id=1, connected=True,
        )


@pytest.fixture
def server_api():
    with patch('mysql_binlog_client.server_api.MySQLConnectionPool') as pool_class:
        api = ServerApi(MysqlSettings(host='db', pool_size=1))
        cursor = pool_class.return_value.get_connection.return_value.cursor.return_value
        yield api, cursor


@pytest.mark.unit
def test_statistics_counters():
    statistics = BinaryLogClientStatistics()
    assert statistics.seconds_since_last_event is None

    statistics.on_event(make_event(EventType.XID, 27))
    statistics.on_event(make_event(EventType.HEARTBEAT, 40))
    statistics.on_event_deserialization_failure(None, BinlogClientError.event_decode('broken'))
    statistics.on_communication_failure(None, BinlogClientError.transport('reset'))

    stats = statistics.get_stats()
    assert stats['total_number_of_events_seen'] == 2
    assert stats['total_bytes_received'] == 67
    assert stats['number_of_heartbeats'] == 1
    assert stats['number_of_skipped_events'] == 1
    assert stats['number_of_lost_connections'] == 1
    assert 'HEARTBEAT' in stats['last_event']
    assert stats['seconds_since_last_event'] >= 0

    statistics.reset()
    assert statistics.get_stats()['total_number_of_events_seen'] == 0


@pytest.mark.unit
def test_statistics_register_with():
    client = MagicMock()
    statistics = BinaryLogClientStatistics().register_with(client)
    client.register_event_listener.assert_called_once_with(statistics)
    client.register_lifecycle_listener.assert_called_once_with(statistics)


@pytest.mark.unit
def test_server_api_last_binlog_file(server_api):
    api, cursor = server_api
    cursor.fetchall.return_value = [
        ('mysql-bin.000009', 1024, 'No'),
        ('mysql-bin.000010', 2048, 'No'),
        ('mysql-bin.000002', 512, 'No'),
    ]

    assert api.get_last_binlog_file() == 'mysql-bin.000010'
    cursor.execute.assert_called_with('SHOW BINARY LOGS')

    cursor.fetchall.return_value = []
    assert api.get_last_binlog_file() is None


@pytest.mark.unit
def test_monitoring_stats(server_api, capsys):
    api, cursor = server_api
    cursor.fetchall.return_value = [('mysql-bin.000007', 1024, 'No')]
    statistics = BinaryLogClientStatistics()
    statistics.on_event(make_event(EventType.XID))

    monitoring = Monitoring(StubClient('mysql-bin.000005'), statistics, api, interval=60)
    monitoring.print_header()
    monitoring.check()
    # the second check is within the interval
    monitoring.check()

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == 'timestamp|mysql|binlog|binlog_diff|events'
    assert len(lines) == 2
    _, mysql_file, client_file, diff, events = lines[1].split('|')
    assert (mysql_file, client_file, diff, events) == ('mysql-bin.000007', 'mysql-bin.000005', '2', '1')


@pytest.mark.unit
def test_monitoring_failure_is_logged(server_api, caplog):
    api, cursor = server_api
    cursor.execute.side_effect = RuntimeError('server has gone away')

    monitoring = Monitoring(StubClient(None), BinaryLogClientStatistics(), api, interval=1)
    monitoring.check()

    assert 'monitoring check failed' in caplog.text


@pytest.mark.unit
def test_monitoring_disabled(server_api):
    api, cursor = server_api
    Monitoring(StubClient('mysql-bin.000001'), BinaryLogClientStatistics(), api, interval=0).check()
    cursor.execute.assert_not_called()


@pytest.mark.unit
def test_binlog_number():
    assert binlog_number('mysql-bin.000123') == 123
    assert binlog_number('/var/lib/mysql/binlog.000001') == 1
