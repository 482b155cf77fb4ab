import os

import pytest

from utils import docker_utils, system
from utils.audit_logger import AuditEventType, AuditLogger
from utils.errors import CommandFailed, ConfigurationError
from utils.validation import validate_branch, validate_domain, validate_install_path, validate_subnet


@pytest.fixture
def healthy_host(monkeypatch):
    monkeypatch.setattr(system, 'is_linux', lambda: False)
    monkeypatch.setattr(system, 'missing_tools', lambda tools=system.REQUIRED_TOOLS: [])
    monkeypatch.setattr(system, 'total_memory_kb', lambda: 8_000_000)
    monkeypatch.delenv('DOCKER_BUILDKIT', raising=False)


def test_preflight_passes(healthy_host, executor, monkeypatch):
    system.preflight_checks(executor)
    assert executor.lines == ['docker info']
    assert os.environ['DOCKER_BUILDKIT'] == '1'


def test_preflight_missing_tools(healthy_host, executor, monkeypatch):
    monkeypatch.setattr(system, 'missing_tools', lambda tools=system.REQUIRED_TOOLS: ['openssl'])
    with pytest.raises(ConfigurationError):
        system.preflight_checks(executor)


def test_preflight_docker_missing(healthy_host, executor):
    executor.fail('docker info', returncode=127)
    with pytest.raises(ConfigurationError):
        system.preflight_checks(executor)


def test_preflight_docker_stopped(healthy_host, executor):
    executor.fail('docker info', output='Is the docker daemon running?')
    with pytest.raises(CommandFailed):
        system.preflight_checks(executor)


def test_preflight_low_memory_only_warns(healthy_host, executor, monkeypatch, capsys):
    monkeypatch.setattr(system, 'total_memory_kb', lambda: 1_000_000)
    system.preflight_checks(executor)
    assert 'below 2GB' in capsys.readouterr().out


def test_free_ports_kills_only_busy_ports(executor, monkeypatch):
    monkeypatch.setattr(system, 'ports_in_use', lambda ports: [443])
    assert system.free_ports(executor, (80, 443)) == [443]
    assert executor.lines == ['fuser -k 443/tcp']


def test_free_ports_when_unknown(executor, monkeypatch):
    monkeypatch.setattr(system, 'ports_in_use', lambda ports: None)
    executor.fail('fuser')
    system.free_ports(executor, (80, 443))
    assert executor.count('fuser -k') == 2


def test_docker_gid_default(tmp_path):
    assert docker_utils.detect_docker_gid(tmp_path / 'missing.sock') == '999'
    regular = tmp_path / 'file'
    regular.write_text('')
    assert docker_utils.detect_docker_gid(regular) == '999'


def test_docker_status_permission_denied(executor):
    executor.fail('docker info', output='permission denied while trying to connect')
    status = docker_utils.check_docker_status(executor)
    assert status['installed'] and not status['running']
    assert 'sudo' in status['message']


@pytest.mark.parametrize('value', ['relative', '/opt/../etc', '', '/opt/\x00x'])
def test_install_path_validation(value):
    with pytest.raises(ConfigurationError):
        validate_install_path(value)


def test_validators_accept_good_values():
    assert validate_install_path('/opt/freescout-docker') == '/opt/freescout-docker'
    assert validate_domain('localhost') == 'localhost'
    assert validate_domain('help.example.com') == 'help.example.com'
    assert validate_subnet('10.10.0.0/16') == '10.10.0.0/16'
    assert validate_branch('laravel-11-foundation') == 'laravel-11-foundation'


@pytest.mark.parametrize('validator, value', [
    (validate_domain, '-bad.example.com'),
    (validate_domain, 'nodots'),
    (validate_subnet, '10.0.0.1/24'),
    (validate_subnet, '10.0.0.0'),
    (validate_branch, '--upload-pack=x'),
    (validate_branch, 'a..b'),
])
def test_validators_reject_bad_values(validator, value):
    with pytest.raises(ConfigurationError):
        validator(value)


def test_audit_log_round_trip(tmp_path):
    audit = AuditLogger(tmp_path)
    audit.log_event(AuditEventType.RECONCILE, {'decision': 'REUSE_EXISTING'})
    audit.log_event(AuditEventType.DEPLOY, {'platform': 'docker'})

    events = audit.get_recent_events()
    assert [e['event_type'] for e in events] == ['DEPLOY', 'RECONCILE']
    assert audit.get_recent_events(event_type=AuditEventType.RECONCILE)[0]['details'] == {
        'decision': 'REUSE_EXISTING'
    }
    assert list((tmp_path / '.deploy' / 'daily').glob('*.txt'))


def test_audit_log_disabled(tmp_path):
    AuditLogger(tmp_path, enabled=False).log_event(AuditEventType.DEPLOY)
    assert not (tmp_path / '.deploy').exists()


def test_compose_command_prefers_plugin(executor):
    assert docker_utils.get_docker_compose_command(executor) == ['docker', 'compose']


def test_compose_command_legacy_binary(executor):
    executor.fail('docker compose version')
    assert docker_utils.get_docker_compose_command(executor) == ['docker-compose']
    executor.fail('docker-compose --version', returncode=127)
    assert docker_utils.get_docker_compose_command(executor) == ['docker', 'compose']
