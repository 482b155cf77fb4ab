# TREESCOUT v2.0
import logging
import re
from pathlib import Path

from config import COMPOSER_TIMEOUT
from utils.executor import check, run_best_effort

_log = logging.getLogger(__name__)


class ComposeProject:
    '''docker compose commands run from an installation directory'''

    def __init__(self, executor, install_dir, compose_command=None):
        self.executor = executor
        self.install_dir = Path(install_dir)
        self.command = list(compose_command or ['docker', 'compose'])

    @property
    def compose_file(self):
        return self.install_dir / 'docker-compose.yml'

    def exists(self):
        return self.compose_file.exists()

    def _run(self, args, message=None, input_text=None):
        return self.executor.run(
            self.command + list(args),
            cwd=self.install_dir,
            message=message,
            input_text=input_text,
        )

    def down(self, volumes=False, remove_orphans=False):
        '''Stop containers; best-effort'''
        args = ['down']
        if volumes:
            args.append('-v')
        if remove_orphans:
            args.append('--remove-orphans')
        return run_best_effort(
            self.executor, self.command + args, "docker compose down",
            cwd=self.install_dir, message="Stopping containers",
        )

    @property
    def project_name(self):
        '''Name compose derives from the directory: lowercased, only [a-z0-9_-]'''
        return re.sub(r'[^a-z0-9_-]', '', self.install_dir.name.lower())

    def remove_volume(self, name):
        '''Delete a named volume of this project; failure is fatal'''
        volume = f"{self.project_name}_{name}"
        return check(
            self.executor.run(['docker', 'volume', 'rm', '-f', volume],
                              message=f"Removing volume {volume}"),
            f"Removing volume {volume}",
            hint="Stop any container still using it (docker ps) and retry",
        )

    def build(self, service='app'):
        return check(
            self._run(['build', service], message=f"Building {service} image (BuildKit)"),
            f"Building {service} image",
        )

    def up(self):
        return check(self._run(['up', '-d'], message="Starting all services"), "Starting services")

    def pull(self):
        return run_best_effort(
            self.executor, self.command + ['pull'], "docker compose pull",
            cwd=self.install_dir, message="Checking for base image updates",
        )

    def exec(self, args, step, service='app', env=None, user=None, input_text=None,
             message=None, required=True):
        '''docker compose exec -T <service> args'''
        cmd = ['exec']
        for key, value in (env or {}).items():
            cmd += ['-e', f'{key}={value}']
        cmd.append('-T')
        if user:
            cmd += ['-u', user]
        cmd.append(service)
        cmd += list(args)

        result = self._run(cmd, message=message or step, input_text=input_text)
        if required:
            check(result, step)
        elif not result.ok:
            _log.warning("%s failed (exit code %s), continuing", step, result.returncode)
        return result

    def artisan(self, *args, step=None, **kwargs):
        return self.exec(['php', 'artisan'] + list(args), step or f"artisan {args[0]}", **kwargs)

    def composer(self, args, step, user=None):
        return self.exec(
            ['composer'] + list(args), step,
            env={'COMPOSER_PROCESS_TIMEOUT': COMPOSER_TIMEOUT}, user=user,
        )

    def ps(self):
        return self.executor.stream(self.command + ['ps'], cwd=self.install_dir)

    def logs(self, service='app', follow=True):
        args = ['logs']
        if follow:
            args.append('-f')
        args.append(service)
        return self.executor.stream(self.command + args, cwd=self.install_dir)
