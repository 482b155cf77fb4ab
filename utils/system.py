# TREESCOUT v2.0
import logging
import os
import platform
import shutil

import psutil

from cli.ui import show_info, show_success, show_warning
from config import MIN_MEMORY_KB
from utils.docker_utils import check_docker_status
from utils.errors import CommandFailed, ConfigurationError
from utils.executor import check, run_best_effort

_log = logging.getLogger(__name__)

REQUIRED_TOOLS = ('git', 'curl', 'openssl')


def get_platform():
    '''Detect platform (linux/windows/darwin)'''
    return platform.system().lower()


def is_linux():
    '''Check if running on Linux'''
    return get_platform() == 'linux'


def is_root():
    return hasattr(os, 'geteuid') and os.geteuid() == 0


def needs_sudo():
    '''Docker and file ownership commands need sudo on Linux when not root'''
    return is_linux() and not is_root() and shutil.which('sudo') is not None


def check_command_exists(command):
    '''Check if command exists on PATH'''
    return shutil.which(command) is not None


def missing_tools(tools=REQUIRED_TOOLS):
    return [tool for tool in tools if not check_command_exists(tool)]


def total_memory_kb():
    return psutil.virtual_memory().total // 1024


def ports_in_use(ports):
    '''Subset of ports with a listening socket; None when it cannot be determined'''
    try:
        connections = psutil.net_connections(kind='inet')
    except (psutil.AccessDenied, OSError):
        return None
    listening = {
        c.laddr.port for c in connections
        if c.status == psutil.CONN_LISTEN and c.laddr
    }
    return [p for p in ports if p in listening]


def free_ports(executor, ports):
    '''Kill whatever holds the given TCP ports (best-effort)'''
    busy = ports_in_use(ports)
    if busy is None:
        busy = list(ports)
    for port in busy:
        _log.info("Freeing port %s", port)
        run_best_effort(executor, ['fuser', '-k', f'{port}/tcp'], f"Freeing port {port}")
    return busy


def install_missing_tools(executor, tools):
    '''Install tools with apt-get (best-effort, Debian/Ubuntu only)'''
    if not is_linux() or not check_command_exists('apt-get'):
        return
    show_warning(f"Installing missing tools: {' '.join(tools)}")
    run_best_effort(executor, ['apt-get', 'update', '-qq'], "apt-get update")
    run_best_effort(
        executor, ['apt-get', 'install', '-y', '-qq'] + list(tools),
        "apt-get install", message="Installing required tools"
    )


def preflight_checks(executor):
    '''Verify tools, Docker daemon and memory before touching anything'''
    if is_linux() and not is_root() and not check_command_exists('sudo'):
        raise ConfigurationError("This tool requires root or sudo access")

    missing = missing_tools()
    if missing:
        install_missing_tools(executor, missing)
        missing = missing_tools()
        if missing:
            raise ConfigurationError(f"Required tools not found: {', '.join(missing)}")

    show_info("Verifying Docker daemon status...")
    status = check_docker_status(executor)
    if not status['installed']:
        raise ConfigurationError("Docker is not installed. See https://get.docker.com")
    if not status['running']:
        raise CommandFailed("Docker daemon check", hint=status['message'])

    try:
        mem_kb = total_memory_kb()
    except (OSError, RuntimeError) as e:
        _log.debug("Could not read memory size: %s", e)
    else:
        if mem_kb < MIN_MEMORY_KB:
            show_warning("System memory is below 2GB. Performance may be degraded.")
            show_warning("Recommended: 4GB+ for production.")
        else:
            show_success("System memory check passed")

    # BuildKit for faster builds
    os.environ['DOCKER_BUILDKIT'] = '1'
    os.environ['COMPOSE_DOCKER_CLI_BUILD'] = '1'


def fix_ownership(executor, path, owner):
    '''chown -R path to owner (e.g. "33:33"); failure is fatal'''
    check(executor.run(['chown', '-R', owner, str(path)]), f"Setting ownership of {path}")
