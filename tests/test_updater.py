import pytest

from deploy.updater import QuickUpdater
from utils.errors import CommandFailed, ConfigurationError, OperatorAbort
from utils.executor import CommandResult


@pytest.fixture
def installed(deploy_config):
    root = deploy_config.install_path
    (root / 'docker-compose.yml').write_text("services: {}\n")
    (root / 'src').mkdir()
    return deploy_config


@pytest.fixture
def git_host(executor):
    executor.on('rev-parse --abbrev-ref HEAD', result=CommandResult(0, 'main\n'))
    return executor


def make_updater(config, executor, prompt):
    return QuickUpdater(config, executor, prompt, compose_command=['docker', 'compose'],
                        sleep=lambda seconds: None)


def test_update_happy_path(installed, git_host, scripted):
    branch = make_updater(installed, git_host, scripted()).run()

    assert branch == 'main'
    steps = [
        'git pull origin main',
        'docker compose pull',
        'docker compose down',
        'docker compose up -d',
        'artisan --version',
        'composer install --no-dev',
        'npm run build',
        'artisan migrate --force',
        'artisan cache:clear',
        'artisan config:cache',
        'docker compose ps',
    ]
    positions = [git_host.index(step) for step in steps]
    assert positions == sorted(positions)
    assert not git_host.ran('module:migrate')
    assert not git_host.ran('git stash')


def test_update_runs_module_migrations(installed, git_host, scripted):
    (installed.src_path / 'Modules' / 'Crm').mkdir(parents=True)
    make_updater(installed, git_host, scripted()).run()
    assert git_host.ran('artisan module:migrate --all --force')
    assert git_host.ran('artisan tinker')


def test_missing_install_dir(installed, executor, scripted, tmp_path):
    installed.install_dir = str(tmp_path / 'missing')
    with pytest.raises(ConfigurationError):
        make_updater(installed, executor, scripted()).run()


def test_missing_compose_file(deploy_config, executor, scripted):
    (deploy_config.install_path / 'src').mkdir()
    with pytest.raises(ConfigurationError):
        make_updater(deploy_config, executor, scripted()).run()


def test_docker_not_running(installed, executor, scripted):
    executor.fail('docker info', output='Cannot connect to the Docker daemon')
    with pytest.raises(CommandFailed) as exc:
        make_updater(installed, executor, scripted()).run()
    assert 'systemctl start docker' in exc.value.hint


def test_uncommitted_changes_non_interactive(installed, git_host, scripted):
    git_host.on('status --porcelain', result=CommandResult(0, ' M app/Http/Kernel.php\n'))
    with pytest.raises(CommandFailed):
        make_updater(installed, git_host, scripted()).run()
    assert not git_host.ran('git pull')


def test_uncommitted_changes_stashed_on_confirmation(installed, git_host, scripted):
    installed.interactive = True
    git_host.on('status --porcelain', result=CommandResult(0, ' M x.php\n'))

    make_updater(installed, git_host, scripted(['y'])).run()

    assert git_host.index('git stash') < git_host.index('git pull')


def test_uncommitted_changes_declined(installed, git_host, scripted):
    installed.interactive = True
    git_host.on('status --porcelain', result=CommandResult(0, ' M x.php\n'))

    with pytest.raises(OperatorAbort):
        make_updater(installed, git_host, scripted(['n'])).run()


def test_app_never_ready(installed, git_host, scripted):
    git_host.fail('artisan --version')
    with pytest.raises(CommandFailed):
        make_updater(installed, git_host, scripted()).run()
    assert git_host.count('artisan --version') == 30
    assert not git_host.ran('composer')
