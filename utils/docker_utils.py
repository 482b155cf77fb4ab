import os
import stat

DOCKER_SOCKET = '/var/run/docker.sock'
DEFAULT_DOCKER_GID = '999'


def get_docker_compose_command(executor):
    """Compose v2 plugin (`docker compose`) or the legacy `docker-compose` binary"""
    if executor.run(['docker', 'compose', 'version']).ok:
        return ['docker', 'compose']
    if executor.run(['docker-compose', '--version']).ok:
        return ['docker-compose']
    # Neither found: let the first compose call report it
    return ['docker', 'compose']


def detect_docker_gid(socket_path=DOCKER_SOCKET):
    """Group id owning the docker socket, or the conventional default."""
    try:
        st = os.stat(socket_path)
    except OSError:
        return DEFAULT_DOCKER_GID
    if not stat.S_ISSOCK(st.st_mode):
        return DEFAULT_DOCKER_GID
    return str(st.st_gid)


def check_docker_status(executor):
    """Check Docker availability and return detailed status."""
    result = executor.run(['docker', 'info'])
    if result.returncode == 127:
        return {'installed': False, 'running': False,
                'message': 'Docker is not installed.'}
    if result.ok:
        return {'installed': True, 'running': True, 'message': 'Docker is running'}

    output = result.output.lower()
    if 'cannot connect' in output or 'is the docker daemon running' in output:
        return {'installed': True, 'running': False,
                'message': 'Docker is installed but not running. Try: sudo systemctl start docker'}
    if 'permission denied' in output:
        return {'installed': True, 'running': False,
                'message': 'Permission denied talking to Docker. Run with sudo or join the docker group.'}
    return {'installed': True, 'running': False,
            'message': f'Docker error: {result.output.strip()[:100]}'}
