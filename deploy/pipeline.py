# TREESCOUT v2.0
"""
Full deployment: reconcile an existing installation, generate the
infrastructure files, fetch the application and its modules, build the
containers and finish the Laravel setup inside them.
"""
import logging
import os
import shutil
import time

from cli.ui import (
    console, show_info, show_result_panel, show_step, show_step_detail,
    show_settings_table, show_step_final, show_success, show_warning,
)
from config import ROLE_USER_DEFAULTS
from config.settings import apply_credential_defaults
from deploy import repository, templates
from deploy.compose import ComposeProject
from deploy.readiness import wait_for_database
from deploy.reconcile import (
    InstallationDestroyer, ReconciliationDecision, reconcile, stop_existing_services,
)
from utils.audit_logger import AuditEventType, AuditLogger
from utils.docker_utils import detect_docker_gid
from utils.envfile import update_env_file
from utils.errors import CommandFailed, DeployError, OperatorAbort
from utils.executor import check, run_best_effort
from utils.system import fix_ownership, free_ports, preflight_checks
from utils.validation import validate_domain, validate_required, validate_subnet

_log = logging.getLogger(__name__)

WEB_USER = '33:33'

STORAGE_DIRS = (
    'storage/framework/cache',
    'storage/framework/sessions',
    'storage/framework/views',
    'storage/logs',
    'storage/app/public',
    'bootstrap/cache',
    'Modules',
    'public/modules',
)


def validate_config(config):
    '''Required values per platform; raises ConfigurationError'''
    validate_domain(config.domain_name)
    if config.platform == 'orbstack':
        validate_required('tunnel_token', config.tunnel_token)
    else:
        validate_subnet(config.docker_subnet)


class DeploymentPipeline:
    """
    Runs every deployment step in order. Each step blocks until done;
    the first essential failure raises and stops the run.

    setup   -- optional callable(config) run after preflight (setup wizard)
    preset  -- ReconciliationDecision supplied on the command line
    sleep   -- used by readiness polling
    """

    def __init__(self, config, executor, prompt, compose_command=None,
                 setup=None, preset=None, destroyer=None, audit=None,
                 environ=None, sleep=time.sleep, run_preflight=True):
        self.config = config
        self.executor = executor
        self.prompt = prompt
        self.compose = ComposeProject(executor, config.install_path, compose_command)
        self.setup = setup
        self.preset = preset
        self.destroyer = destroyer or InstallationDestroyer(executor, self.compose.command)
        self.audit = audit or AuditLogger(config.install_path)
        self.environ = os.environ if environ is None else environ
        self.sleep = sleep
        self.run_preflight = run_preflight
        self.reconciliation = None

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(self):
        try:
            self.prepare()
            self.generate()
            self.fetch_sources()
            self.launch()
            self.finalize()
        except DeployError as e:
            self.audit.log_event(AuditEventType.DEPLOY_FAILED, {
                'install_dir': self.config.install_dir,
                'error': str(e),
            })
            raise

        self.audit.log_event(AuditEventType.DEPLOY, {
            'install_dir': self.config.install_dir,
            'platform': self.config.platform,
            'branch': self.config.branch,
            'reuse_existing_data': self.config.reuse_existing_data,
        })
        self.show_completion()
        return self.reconciliation

    def prepare(self):
        if self.run_preflight:
            show_step("Preflight checks", "active")
            preflight_checks(self.executor)

        if self.setup is not None:
            self.setup(self.config)

        validate_config(self.config)
        self.reconcile()
        apply_credential_defaults(self.config)
        self.decommission()

    def generate(self):
        self.setup_directories()
        self.write_dockerfile()
        self.write_nginx_config()
        self.generate_certificates()
        self.write_docker_env()
        self.write_compose()
        self.write_update_script()

    def fetch_sources(self):
        show_step("Fetching application source", "active")
        repository.clone_or_update_source(
            self.config, self.executor, self.prompt, self.config.interactive
        )
        self.configure_laravel()

        show_step("Installing modules", "active")
        results = repository.install_modules(self.config, self.executor)
        if results:
            self.audit.log_event(AuditEventType.MODULE_INSTALL, results)
        self.prepare_storage()

    def launch(self):
        self.build_and_launch()
        wait_for_database(
            self.executor, self.compose.command, self.config.db_root_password,
            cwd=self.config.install_path, sleep=self.sleep,
        )
        self.install_dependencies()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self):
        show_step("Checking for existing installation", "active")
        result = reconcile(
            self.config.install_path,
            self.config.interactive,
            self.prompt,
            self.destroyer,
            preset=self.preset,
        )
        self.reconciliation = result

        self.audit.log_event(AuditEventType.RECONCILE, {
            'decision': result.decision.value,
            'recovered': ','.join(result.credentials.populated()),
        })

        if result.decision == ReconciliationDecision.ABORT:
            raise OperatorAbort("Aborted. Existing installation left untouched.")

        if result.decision == ReconciliationDecision.DESTROY_AND_REINSTALL:
            self.audit.log_event(AuditEventType.DESTROY, {'install_dir': self.config.install_dir})
            show_success("Cleanup complete. Starting fresh install.")
        elif result.reuse_existing_data:
            show_info("Reusing existing database and credentials.")
            result.credentials.apply_to(self.config)
            if not result.installation.source_checkout_present:
                show_warning("No source checkout found; application credentials not recovered.")

        self.config.reuse_existing_data = result.reuse_existing_data
        return result

    def decommission(self):
        if self.config.reuse_existing_data:
            stop_existing_services(self.config.install_path, self.executor, self.compose.command)
            run_best_effort(
                self.executor, ['docker', 'network', 'prune', '-f'], "Pruning unused networks"
            )

    # ------------------------------------------------------------------
    # Generated files
    # ------------------------------------------------------------------

    def setup_directories(self):
        install = self.config.install_path
        show_step(f"Preparing {install}", "active")
        try:
            (install / 'nginx' / 'ssl').mkdir(parents=True, exist_ok=True)
        except PermissionError:
            check(self.executor.run(['mkdir', '-p', str(install / 'nginx' / 'ssl')]),
                  f"Creating {install}")
            owner = f"{os.environ.get('SUDO_UID', os.getuid())}:{os.environ.get('SUDO_GID', os.getgid())}"
            fix_ownership(self.executor, install, owner)

    def _write(self, relpath, content, mode=None):
        path = self.config.install_path / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        if mode is not None:
            os.chmod(path, mode)
        show_step_detail(f"Wrote {relpath}")
        return path

    def write_dockerfile(self):
        show_step("Generating Dockerfile", "active")
        self._write('Dockerfile', templates.render_dockerfile(self.config.platform))

    def write_nginx_config(self):
        self._write('nginx/default.conf', templates.render_nginx_config())

    def generate_certificates(self):
        show_step("Generating self-signed certificate", "active")
        ssl_dir = self.config.install_path / 'nginx' / 'ssl'
        ssl_dir.mkdir(parents=True, exist_ok=True)
        cert, key = ssl_dir / 'cert.pem', ssl_dir / 'key.pem'

        check(self.executor.run([
            'openssl', 'req', '-x509', '-nodes', '-days', '365', '-newkey', 'rsa:2048',
            '-keyout', str(key), '-out', str(cert),
            '-subj', f"/C=US/ST=State/L=City/O=Organization/CN={self.config.domain_name}",
        ]), "Generating SSL certificate")

        if not cert.is_file() or not key.is_file():
            raise CommandFailed("Generating SSL certificate",
                                hint=f"Certificate files missing in {ssl_dir}")

    def write_docker_env(self):
        self._write('.env', templates.render_docker_env(self.config, self.environ), mode=0o600)

    def write_compose(self):
        gid = detect_docker_gid()
        _log.debug("Docker socket group id: %s", gid)
        self._write('docker-compose.yml', templates.render_compose(self.config, gid))

    def write_update_script(self):
        script = templates.render_update_script(
            self.config, self.compose.command, sudo=getattr(self.executor, 'use_sudo', False)
        )
        self._write('update.sh', script, mode=0o755)

    def configure_laravel(self):
        show_step("Configuring Laravel environment", "active")
        src = self.config.src_path
        example = src / '.env.example'
        if not example.is_file():
            raise CommandFailed("Configuring Laravel .env", hint=f"{example} not found")

        shutil.copyfile(example, src / '.env')
        updates = templates.laravel_env_updates(self.config, templates.generate_reverb_secrets())
        update_env_file(src / '.env', updates)
        show_step_detail("Wrote src/.env")

    def prepare_storage(self):
        src = self.config.src_path
        for rel in STORAGE_DIRS:
            (src / rel).mkdir(parents=True, exist_ok=True)
        if self.config.platform == 'docker':
            fix_ownership(self.executor, src, WEB_USER)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def build_and_launch(self):
        show_step("Building and launching containers", "active")
        self.compose.down(remove_orphans=True)
        if self.config.platform == 'docker':
            free_ports(self.executor, (80, 443))
        self.compose.build('app')
        self.compose.up()

    def _has_modules(self):
        return bool(repository.list_module_dirs(self.config.src_path))

    def install_dependencies(self):
        show_step("Installing dependencies", "active")
        user = 'root' if self.config.platform == 'orbstack' else None
        args = ['update' if self._has_modules() else 'install']
        if not self.config.seed_sample_data:
            args.append('--no-dev')
        args.append('--optimize-autoloader')
        self.compose.composer(args, "composer " + args[0], user=user)
        if user:
            self.compose.exec(['chown', '-R', 'www-data:www-data', 'vendor'],
                              "Fixing vendor ownership", user='root', required=False)

        self.compose.exec(['npm', 'install'], "npm install", message="Installing frontend packages")
        self.compose.exec(['npm', 'run', 'build'], "npm run build", message="Building frontend assets")

    def finalize(self):
        show_step("Finalizing installation", "active")
        cfg = self.config
        self.compose.artisan('key:generate', '--force', step="Generating application key")

        if cfg.reuse_existing_data:
            self.compose.artisan('migrate', '--force', step="Running migrations")
        else:
            self.compose.artisan(
                'freescout:install', '--force',
                f'--email={cfg.admin_email}', f'--password={cfg.admin_password}',
                '--first_name=Admin', '--last_name=User',
                step="Installing FreeScout",
            )

        if self._has_modules():
            self.compose.artisan('module:migrate', '--all', '--force', step="Running module migrations")
            self.compose.artisan('tinker', step="Seeding knowledge base",
                                 input_text=templates.KNOWLEDGE_BASE_SEEDER, required=False)

        self.compose.artisan('db:seed', '--class=ThemeSeeder', '--force', step="Seeding themes",
                             required=False)

        if cfg.seed_sample_data:
            show_info("Seeding sample data...")
            self.compose.artisan('db:seed', '--force', step="Seeding sample data")
            self.compose.composer(['install', '--no-dev', '--optimize-autoloader'],
                                  "Removing dev dependencies")

        self.compose.artisan('db:seed', '--class=UserSeeder', '--force', step="Seeding users",
                             required=False)
        self.compose.exec(['git', 'config', '--global', '--add', 'safe.directory', '/var/www/html'],
                          "git safe.directory", required=False)

        run_best_effort(self.executor, ['docker', 'image', 'prune', '-f'], "Pruning dangling images")
        show_step_final("Deployment complete")

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def show_completion(self):
        cfg = self.config
        password = cfg.admin_password
        if cfg.reuse_existing_data and cfg.admin_password_preserved:
            password = "(Existing password unchanged)"

        lines = [
            f"[bold]URL:[/bold]      {cfg.app_url}",
            f"[bold]Admin:[/bold]    {cfg.admin_email}",
            f"[bold]Password:[/bold] {password}",
        ]

        if cfg.platform == 'orbstack':
            lines += [
                "",
                "[bold]Cloudflare tunnel:[/bold]",
                f"  Point the public hostname {cfg.domain_name} to http://app:8080",
                "  in the Zero Trust dashboard (Networks > Tunnels).",
            ]
        if cfg.google_client_id:
            lines += ["", f"[bold]Google redirect URI:[/bold] {cfg.app_url}/auth/google/callback"]

        lines += ["", f"Update later with: cd {cfg.install_dir} && ./update.sh"]
        show_result_panel("\n".join(lines), title="FreeScout is ready")

        rows = []
        for role in ROLE_USER_DEFAULTS:
            email, role_password, _, _ = templates.role_user(cfg, role)
            rows.append((role, f"{email} / {role_password}"))
        show_settings_table(rows, title="Role users")
        console.print()
