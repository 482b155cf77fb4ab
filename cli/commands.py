# TREESCOUT v2.0
import logging

from cli.prompt import TerminalPrompt, has_interactive_channel
from cli.setup_wizard import run_setup_wizard
from cli.ui import show_info, show_step
from deploy.pipeline import DeploymentPipeline
from deploy.updater import QuickUpdater
from utils.docker_utils import get_docker_compose_command
from utils.executor import SubprocessExecutor
from utils.system import needs_sudo

_log = logging.getLogger(__name__)


class Runtime:
    '''Collaborators shared by every command of one run'''

    def __init__(self, config, config_path, saved=False, preset=None,
                 executor=None, prompt=None, compose_command=None):
        self.config = config
        self.config_path = config_path
        self.saved = saved
        self.preset = preset
        self.executor = executor or SubprocessExecutor(use_sudo=needs_sudo())
        self.prompt = prompt or TerminalPrompt()
        self._compose_command = compose_command

    @property
    def compose_command(self):
        if self._compose_command is None:
            self._compose_command = get_docker_compose_command(self.executor)
            _log.debug("Using compose command: %s", ' '.join(self._compose_command))
        return self._compose_command


def detect_interactive(non_interactive_flag):
    if non_interactive_flag:
        return False
    return has_interactive_channel()


def run_deploy(runtime):
    '''Full deployment. The wizard only runs with an operator present.'''
    config = runtime.config
    setup = None
    if config.interactive:
        def setup(cfg):
            run_setup_wizard(cfg, runtime.prompt, runtime.config_path, saved=runtime.saved)
    else:
        show_info("Non-interactive mode: using saved configuration")

    show_step(f"Deploying {config.branch} to {config.install_dir}", "active")
    pipeline = DeploymentPipeline(
        config,
        runtime.executor,
        runtime.prompt,
        compose_command=runtime.compose_command,
        setup=setup,
        preset=runtime.preset,
    )
    return pipeline.run()


def run_update(runtime):
    show_step(f"Updating installation in {runtime.config.install_dir}", "active")
    updater = QuickUpdater(
        runtime.config,
        runtime.executor,
        runtime.prompt,
        compose_command=runtime.compose_command,
    )
    return updater.run()
