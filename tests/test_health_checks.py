"""
Tests for health check endpoints
"""
import pytest
import time
import psutil
from unittest.mock import patch
from flask import Flask
from health_checks import (
    SERVICE_NAME,
    check_filesystem,
    get_system_metrics,
    get_uptime
)


@pytest.mark.unit
class TestSystemMetrics:
    """Tests for system metrics collection"""

    def test_get_system_metrics_returns_dict(self):
        """Test that get_system_metrics returns a dictionary"""
        metrics = get_system_metrics()
        assert isinstance(metrics, dict)

    def test_system_metrics_has_cpu_percent(self):
        """Test that system metrics includes CPU percent"""
        metrics = get_system_metrics()
        if metrics:
            assert 'cpu_percent' in metrics
            assert isinstance(metrics['cpu_percent'], (int, float))

    def test_system_metrics_has_memory_info(self):
        """Test that system metrics includes memory info"""
        metrics = get_system_metrics()
        if metrics:
            assert 'memory_mb' in metrics
            assert 'memory_percent' in metrics

    @patch('health_checks.psutil.Process')
    def test_system_metrics_handles_errors(self, mock_process):
        """Test that get_system_metrics handles errors gracefully"""
        mock_process.side_effect = psutil.Error("Test error")
        assert get_system_metrics() == {}


@pytest.mark.unit
class TestUptime:
    """Tests for uptime calculation"""

    def test_uptime_has_required_fields(self):
        """Test that uptime includes all required fields"""
        uptime = get_uptime()
        assert 'uptime_seconds' in uptime
        assert 'uptime_hours' in uptime
        assert 'started_at' in uptime

    def test_uptime_increases_over_time(self):
        """Test that uptime increases over time"""
        uptime1 = get_uptime()
        time.sleep(0.1)
        uptime2 = get_uptime()
        assert uptime2['uptime_seconds'] > uptime1['uptime_seconds']


@pytest.mark.unit
class TestFilesystemCheck:
    """Tests for the log directory check"""

    @pytest.fixture
    def plain_app(self):
        return Flask(__name__)

    @patch('os.path.exists')
    @patch('os.access')
    @patch('os.getcwd')
    def test_check_filesystem_all_healthy(self, mock_getcwd, mock_access, mock_exists, plain_app):
        """Test filesystem check when the log directory is healthy"""
        mock_getcwd.return_value = '/test'
        mock_exists.return_value = True
        mock_access.return_value = True

        with plain_app.app_context():
            filesystem = check_filesystem()

        assert filesystem['logs'] == {'exists': True, 'writable': True, 'healthy': True}

    @patch('os.path.exists')
    @patch('os.access')
    @patch('os.getcwd')
    def test_check_filesystem_directory_missing(self, mock_getcwd, mock_access, mock_exists, plain_app):
        """Test filesystem check when directory is missing"""
        mock_getcwd.return_value = '/test'
        mock_exists.return_value = False

        with plain_app.app_context():
            filesystem = check_filesystem()

        assert filesystem['logs']['exists'] is False
        assert filesystem['logs']['healthy'] is False
        mock_access.assert_not_called()

    @patch('os.path.exists')
    @patch('os.access')
    @patch('os.getcwd')
    def test_check_filesystem_directory_not_writable(self, mock_getcwd, mock_access, mock_exists, plain_app):
        """Test filesystem check when directory is not writable"""
        mock_getcwd.return_value = '/test'
        mock_exists.return_value = True
        mock_access.return_value = False

        with plain_app.app_context():
            filesystem = check_filesystem()

        assert filesystem['logs']['writable'] is False
        assert filesystem['logs']['healthy'] is False

    def test_testing_skips_disk_check(self, plain_app):
        plain_app.config['TESTING'] = True
        with plain_app.app_context():
            assert check_filesystem()['logs']['healthy'] is True


@pytest.mark.integration
class TestHealthCheckEndpoints:
    """Integration tests for health check endpoints on the full app"""

    def test_health_endpoint(self, client):
        """Test that /health endpoint returns 200 with the service name"""
        response = client.get('/api/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['service'] == SERVICE_NAME
        assert 'timestamp' in data

    def test_ping_endpoint_returns_pong(self, client):
        """Test that /ping endpoint returns 'pong'"""
        response = client.get('/api/ping')
        assert response.status_code == 200
        assert response.data == b'pong'

    def test_ready_endpoint(self, client):
        """Test that /ready reports the database and filesystem checks"""
        response = client.get('/api/ready')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'ready'
        assert data['checks']['database']['healthy'] is True
        assert data['checks']['filesystem_healthy'] is True

    def test_ready_endpoint_database_down(self, client):
        """Test that /ready answers 503 when the database check fails"""
        with patch('database.connection.check_db_connection', side_effect=RuntimeError('refused')):
            response = client.get('/api/ready')
        assert response.status_code == 503
        assert response.get_json()['checks']['database']['error'] == 'refused'

    def test_metrics_endpoint(self, client):
        """Test that /metrics includes uptime, version, jobs and channels"""
        response = client.get('/api/metrics')
        assert response.status_code == 200
        data = response.get_json()
        assert 'uptime_seconds' in data['uptime']
        assert 'version' in data
        assert data['scheduler']['running'] is False
        assert data['realtime'] == {}
        assert data['providers'] == {'email': False, 'sms': False}
