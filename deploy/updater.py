# TREESCOUT v2.0
import logging
import time

from cli.ui import console, show_info, show_result_panel, show_step, show_step_final, show_success, show_warning
from deploy import repository, templates
from deploy.compose import ComposeProject
from deploy.readiness import wait_for_app
from utils.audit_logger import AuditEventType, AuditLogger
from utils.docker_utils import check_docker_status
from utils.errors import CommandFailed, ConfigurationError, DeployError, OperatorAbort
from utils.executor import check

_log = logging.getLogger(__name__)


class QuickUpdater:
    '''
    Pull new code into an existing installation and refresh it in place,
    without regenerating configuration or touching data.
    '''

    def __init__(self, config, executor, prompt, compose_command=None, audit=None,
                 sleep=time.sleep):
        self.config = config
        self.executor = executor
        self.prompt = prompt
        self.compose = ComposeProject(executor, config.install_path, compose_command)
        self.audit = audit or AuditLogger(config.install_path)
        self.sleep = sleep
        self.branch = None

    def run(self):
        try:
            self.verify_installation()
            self.pull_latest_code()
            self.pull_images()
            self.restart_containers()
            wait_for_app(self.executor, self.compose.command, cwd=self.config.install_path,
                         sleep=self.sleep)
            self.install_dependencies()
            self.run_migrations()
            self.clear_caches()
            self.optimize()
        except DeployError as e:
            self.audit.log_event(AuditEventType.DEPLOY_FAILED, {
                'action': 'update',
                'error': str(e),
            })
            raise

        self.audit.log_event(AuditEventType.UPDATE, {'branch': self.branch})
        self.show_status()
        return self.branch

    def verify_installation(self):
        show_step("Verifying installation", "active")
        install = self.config.install_path
        if not install.is_dir():
            raise ConfigurationError(f"Install directory not found: {install}")
        if not self.compose.exists():
            raise ConfigurationError("docker-compose.yml not found. Is this a valid installation?")
        if not self.config.src_path.is_dir():
            raise ConfigurationError("src directory not found. Is this a valid installation?")

        status = check_docker_status(self.executor)
        if not status['installed']:
            raise ConfigurationError("Docker not found. Install OrbStack or Docker Desktop.")
        if not status['running']:
            raise CommandFailed("Docker daemon check", hint=status['message'])
        show_success("Installation verified")

    def pull_latest_code(self):
        show_step("Pulling latest code", "active")
        src = self.config.src_path
        self.branch = repository.current_branch(self.executor, src)
        show_info(f"Current branch: {self.branch}")

        if repository.has_uncommitted_changes(self.executor, src):
            show_warning("Uncommitted changes detected")
            if not self.config.interactive:
                raise CommandFailed(
                    "git pull", hint="Cannot pull with uncommitted changes in non-interactive mode"
                )
            if not self.prompt.confirm("Stash changes and continue?", default=False):
                raise OperatorAbort("Cannot pull with uncommitted changes")
            check(self.executor.run(['git', 'stash'], cwd=src), "git stash")

        check(self.executor.run(['git', 'fetch', 'origin'], cwd=src, message="Fetching from origin"),
              "git fetch")
        check(self.executor.run(['git', 'pull', 'origin', self.branch], cwd=src,
                                message="Pulling latest changes"),
              "git pull")
        show_success("Code updated")

    def pull_images(self):
        show_step("Pulling latest Docker images", "active")
        self.compose.pull()

    def restart_containers(self):
        show_step("Restarting containers", "active")
        self.compose.down()
        self.compose.up()

    def install_dependencies(self):
        show_step("Installing dependencies", "active")
        self.compose.composer(['install', '--no-dev', '--optimize-autoloader'],
                              "composer install", user='root')
        self.compose.exec(
            ['chown', '-R', 'www-data:www-data', '/var/www/html/vendor', '/var/www/html/composer.lock'],
            "Fixing vendor ownership", user='root', required=False,
        )
        self.compose.exec(['npm', 'install'], "npm install", user='root')
        self.compose.exec(['npm', 'run', 'build'], "npm run build", user='root')

    def run_migrations(self):
        show_step("Running database migrations", "active")
        self.compose.artisan('migrate', '--force', step="Running migrations")
        if repository.list_module_dirs(self.config.src_path):
            self.compose.artisan('module:migrate', '--all', '--force',
                                 step="Running module migrations")
            self.compose.artisan('tinker', step="Seeding knowledge base",
                                 input_text=templates.KNOWLEDGE_BASE_SEEDER, required=False)

    def clear_caches(self):
        show_step("Clearing application caches", "active")
        for target in ('cache', 'config', 'view', 'route'):
            self.compose.artisan(f'{target}:clear', step=f"Clearing {target} cache", required=False)

    def optimize(self):
        show_step("Optimizing application", "active")
        for target in ('config', 'route', 'view'):
            self.compose.artisan(f'{target}:cache', step=f"Caching {target}", required=False)

    def show_status(self):
        show_step_final("Update complete")
        console.print()
        self.compose.ps()
        show_result_panel(
            "Next steps:\n"
            "  • View logs:      docker compose logs -f\n"
            "  • Check services: docker compose ps\n"
            "  • Stop all:       docker compose down",
            title="Update complete",
        )
