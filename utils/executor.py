# TREESCOUT v2.0 - Thin command execution layer
import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from typing import List, Mapping, Optional, Sequence

from utils.errors import CommandFailed

_log = logging.getLogger(__name__)

# Conventional shell status for "command not found"
NOT_FOUND = 127

# user:password@ in URLs, -pSECRET (mysql), --password=SECRET
_URL_CREDENTIALS = re.compile(r'(\w+://)[^/\s@]+@')
_SECRET_FLAG = re.compile(r'^(-p|--password=)(.+)$')
_SECRET_KEYS = ('PASSWORD', 'TOKEN', 'SECRET')


def redact_text(text: str) -> str:
    '''Mask credentials embedded in URLs'''
    return _URL_CREDENTIALS.sub(r'\1***@', text)


def redact_args(args: Sequence[str]) -> str:
    '''Join a command line for logging with passwords and tokens masked'''
    masked = []
    for arg in args:
        arg = redact_text(str(arg))
        match = _SECRET_FLAG.match(arg)
        if match:
            arg = f"{match.group(1)}***"
        elif '=' in arg and not arg.startswith('-'):
            key, _, _ = arg.partition('=')
            if any(word in key.upper() for word in _SECRET_KEYS):
                arg = f"{key}=***"
        masked.append(arg)
    return ' '.join(masked)


class CommandResult:
    '''Exit status plus merged stdout/stderr of one external command'''

    def __init__(self, returncode: int, output: str = ''):
        self.returncode = returncode
        self.output = output

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def __repr__(self):
        return f"CommandResult(returncode={self.returncode!r})"


class CommandExecutor(ABC):
    '''
    Runs external tools (docker, git, openssl, ...).
    Orchestration code only talks to this interface so tests can
    substitute a recording fake.
    '''

    @abstractmethod
    def run(self, args: Sequence[str], cwd=None, env: Optional[Mapping[str, str]] = None,
            input_text: Optional[str] = None, message: Optional[str] = None) -> CommandResult:
        '''Run args to completion and return its result'''

    def stream(self, args: Sequence[str], cwd=None) -> int:
        '''Run attached to the terminal (logs -f, compose ps). Returns exit code.'''
        return self.run(args, cwd=cwd).returncode


class SubprocessExecutor(CommandExecutor):
    '''Executes commands with subprocess, optionally behind a rich spinner'''

    def __init__(self, use_sudo: bool = False, show_progress: bool = True):
        self.use_sudo = use_sudo
        self.show_progress = show_progress

    def _prepare(self, args) -> List[str]:
        args = [str(a) for a in args]
        if self.use_sudo and args and args[0] in ('docker', 'rm', 'chown', 'apt-get', 'mkdir', 'fuser'):
            return ['sudo'] + args
        return args

    def _merged_env(self, env):
        if env is None:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run(self, args, cwd=None, env=None, input_text=None, message=None):
        command = self._prepare(args)
        _log.debug("run: %s (cwd=%s)", redact_args(command), cwd)

        def _call():
            try:
                proc = subprocess.run(
                    command,
                    cwd=str(cwd) if cwd else None,
                    env=self._merged_env(env),
                    input=input_text,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding='utf-8',
                    errors='ignore'
                )
            except FileNotFoundError:
                return CommandResult(NOT_FOUND, f"{command[0]}: command not found")
            return CommandResult(proc.returncode, proc.stdout or '')

        if message and self.show_progress:
            from utils.docker_progress import ProgressMonitor
            with ProgressMonitor(message) as monitor:
                result = _call()
                monitor.set_result(result)
        else:
            result = _call()

        if not result.ok:
            _log.debug("exit %s: %s", result.returncode, redact_text(result.output.strip()[-500:]))
        return result

    def stream(self, args, cwd=None):
        command = self._prepare(args)
        try:
            return subprocess.call(command, cwd=str(cwd) if cwd else None)
        except FileNotFoundError:
            return NOT_FOUND


def check(result: CommandResult, step: str, hint: Optional[str] = None) -> CommandResult:
    '''Raise CommandFailed unless result succeeded'''
    if not result.ok:
        raise CommandFailed(step, result, hint=hint)
    return result


def run_best_effort(executor: CommandExecutor, args, step: str, **kwargs) -> CommandResult:
    '''Run a non-essential command; failures are logged, never raised'''
    result = executor.run(args, **kwargs)
    if not result.ok:
        _log.warning("%s failed (exit code %s), continuing", step, result.returncode)
    return result
