"""
Existing-installation reconciliation.

Runs once per deployment, before any configuration is generated, and decides
what to do with a previous installation at the target path:

    START -> FRESH             no marker file
    START -> REUSE             marker + "reuse" (or no terminal attached)
    START -> CONFIRM_DESTROY   marker + "overwrite"
    CONFIRM_DESTROY -> DESTROY operator typed "yes"
    CONFIRM_DESTROY -> ABORTED anything else
    FRESH / REUSE / DESTROY -> DONE

Only the DESTROY branch has side effects, through InstallationDestroyer.
"""
import logging
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Optional

from config import DB_VOLUME
from deploy.compose import ComposeProject
from utils.envfile import read_env_value
from utils.errors import CommandFailed, ConfigurationError
from utils.executor import check, run_best_effort

_log = logging.getLogger(__name__)

MARKER_FILE = '.env'
SOURCE_DIR = 'src'
APP_ENV_FILE = '.env'
CONFIRM_TOKEN = 'yes'

REUSE_CHOICE = "Reuse existing database (Keep data)"
OVERWRITE_CHOICE = "Overwrite database (DESTROY ALL DATA)"


class ReconciliationDecision(Enum):
    FRESH_INSTALL = "FRESH_INSTALL"
    REUSE_EXISTING = "REUSE_EXISTING"
    DESTROY_AND_REINSTALL = "DESTROY_AND_REINSTALL"
    ABORT = "ABORT"


class ReconcileState(Enum):
    START = "START"
    FRESH = "FRESH"
    REUSE = "REUSE"
    CONFIRM_DESTROY = "CONFIRM_DESTROY"
    DESTROY = "DESTROY"
    ABORTED = "ABORTED"
    DONE = "DONE"


class ReconcileEvent(Enum):
    NO_MARKER = "NO_MARKER"
    REUSE = "REUSE"
    DESTROY_CHOSEN = "DESTROY_CHOSEN"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    FINISH = "FINISH"


TRANSITIONS = {
    (ReconcileState.START, ReconcileEvent.NO_MARKER): ReconcileState.FRESH,
    (ReconcileState.START, ReconcileEvent.REUSE): ReconcileState.REUSE,
    (ReconcileState.START, ReconcileEvent.DESTROY_CHOSEN): ReconcileState.CONFIRM_DESTROY,
    (ReconcileState.CONFIRM_DESTROY, ReconcileEvent.CONFIRMED): ReconcileState.DESTROY,
    (ReconcileState.CONFIRM_DESTROY, ReconcileEvent.DECLINED): ReconcileState.ABORTED,
    (ReconcileState.FRESH, ReconcileEvent.FINISH): ReconcileState.DONE,
    (ReconcileState.REUSE, ReconcileEvent.FINISH): ReconcileState.DONE,
    (ReconcileState.DESTROY, ReconcileEvent.FINISH): ReconcileState.DONE,
}

TERMINAL_STATES = (ReconcileState.ABORTED, ReconcileState.DONE)

DECISION_FOR_STATE = {
    ReconcileState.FRESH: ReconciliationDecision.FRESH_INSTALL,
    ReconcileState.REUSE: ReconciliationDecision.REUSE_EXISTING,
    ReconcileState.DESTROY: ReconciliationDecision.DESTROY_AND_REINSTALL,
    ReconcileState.ABORTED: ReconciliationDecision.ABORT,
}


def transition(state, event):
    '''Return the next state; raises ValueError for a transition not in the table'''
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise ValueError(f"Illegal reconcile transition: {state.value} on {event.value}")


@dataclass(frozen=True)
class InstallationState:
    '''View over the filesystem, recomputed on every run'''
    marker_present: bool
    source_checkout_present: bool


@dataclass
class RecoveredCredentials:
    '''Credentials of a previous deployment. Every field is independently optional.'''
    db_root_password: Optional[str] = None
    db_password: Optional[str] = None
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    # field -> (source, env key); source 'infra' = <root>/.env, 'app' = <root>/src/.env
    SOURCES = {
        'db_root_password': ('infra', 'DB_ROOT_PASSWORD'),
        'db_password': ('infra', 'DB_PASSWORD'),
        'db_name': ('infra', 'DB_DATABASE'),
        'db_user': ('infra', 'DB_USER'),
        'admin_email': ('app', 'ADMIN_EMAIL'),
        'admin_password': ('app', 'ADMIN_PASSWORD'),
    }

    def is_empty(self):
        return all(getattr(self, f.name) is None for f in fields(self))

    def populated(self):
        '''Names of recovered fields'''
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def apply_to(self, config):
        '''Copy recovered values onto a DeployConfig; unset fields are left alone'''
        for name in self.populated():
            setattr(config, name, getattr(self, name))
        if self.admin_password is not None:
            config.admin_password_preserved = True
        return config


@dataclass
class ReconciliationResult:
    decision: ReconciliationDecision
    credentials: RecoveredCredentials
    installation: InstallationState
    state: ReconcileState

    @property
    def reuse_existing_data(self):
        return self.decision == ReconciliationDecision.REUSE_EXISTING


def _validate_target(install_dir):
    if install_dir is None or not str(install_dir).strip():
        raise ConfigurationError("Installation path must not be empty")
    if '\x00' in str(install_dir):
        raise ConfigurationError("Installation path contains a NUL byte")
    path = Path(install_dir)
    if path.exists() and not path.is_dir():
        raise ConfigurationError(f"Installation path is not a directory: {path}")
    return path


def inspect_installation(install_dir):
    '''Look for the marker file and a source checkout'''
    path = Path(install_dir)
    return InstallationState(
        marker_present=(path / MARKER_FILE).is_file(),
        source_checkout_present=(path / SOURCE_DIR).is_dir(),
    )


def recover_credentials(install_dir):
    '''Read credentials back from the infrastructure and application env files.
    Missing files and missing keys simply leave fields unset.
    '''
    path = Path(install_dir)
    sources = {
        'infra': path / MARKER_FILE,
        'app': path / SOURCE_DIR / APP_ENV_FILE,
    }

    creds = RecoveredCredentials()
    for name, (source, key) in RecoveredCredentials.SOURCES.items():
        value = read_env_value(sources[source], key)
        if value:
            setattr(creds, name, value)

    _log.debug("Recovered credentials: %s", ', '.join(creds.populated()) or 'none')
    return creds


class InstallationDestroyer:
    '''
    Destructive action executor: stops services, deletes the database volume
    and the source checkout of a previous installation.
    Container teardown is best-effort; removing the data must succeed.
    '''

    def __init__(self, executor, compose_command=None):
        self.executor = executor
        self.compose_command = list(compose_command or ['docker', 'compose'])

    def destroy(self, install_dir):
        path = Path(install_dir)
        compose = ComposeProject(self.executor, path, self.compose_command)

        if compose.exists():
            compose.down(volumes=True, remove_orphans=True)
        # down -v may have failed or had no compose file to work from
        compose.remove_volume(DB_VOLUME)

        src = path / SOURCE_DIR
        if src.exists():
            check(
                self.executor.run(['rm', '-rf', str(src)], message="Removing source code directory"),
                "Removing source code directory",
            )
            if src.exists():
                raise CommandFailed("Removing source code directory",
                                    hint=f"{src} still present after removal")

        run_best_effort(
            self.executor,
            ['docker', 'network', 'prune', '-f'],
            "Pruning unused networks",
        )


def stop_existing_services(install_dir, executor, compose_command=None):
    '''Stop the previous stack before reusing its data (best-effort)'''
    compose = ComposeProject(executor, install_dir, compose_command)
    if not compose.exists():
        return None
    return compose.down()


def _ask_reuse_or_overwrite(prompt):
    choice = prompt.choose("Existing installation found", [REUSE_CHOICE, OVERWRITE_CHOICE])
    return choice == OVERWRITE_CHOICE


def reconcile(install_dir, interactive, prompt, destroyer, preset=None):
    '''
    Decide how to treat a previous installation at install_dir.

    interactive -- whether an operator can answer prompts
    prompt      -- PromptProvider, used only when interactive
    destroyer   -- InstallationDestroyer, called at most once
    preset      -- decision already known (command line); a destroy preset
                   still needs the typed confirmation and an operator

    Returns a ReconciliationResult. An ABORT decision is returned, not
    raised; the caller must stop without generating anything.
    '''
    path = _validate_target(install_dir)

    if preset not in (None, ReconciliationDecision.REUSE_EXISTING,
                      ReconciliationDecision.DESTROY_AND_REINSTALL):
        raise ConfigurationError(f"Unsupported preset decision: {preset.value}")

    installation = inspect_installation(path)
    creds = RecoveredCredentials()
    state = ReconcileState.START

    if not installation.marker_present:
        state = transition(state, ReconcileEvent.NO_MARKER)
        return ReconciliationResult(
            DECISION_FOR_STATE[state], creds, installation, transition(state, ReconcileEvent.FINISH)
        )

    _log.info("Existing installation found at %s", path)

    if not interactive:
        # Never destroy without an operator, whatever was requested
        if preset == ReconciliationDecision.DESTROY_AND_REINSTALL:
            _log.warning("No operator to confirm --destroy; reusing the existing installation")
        destroy = False
    elif preset is not None:
        destroy = preset == ReconciliationDecision.DESTROY_AND_REINSTALL
    else:
        destroy = _ask_reuse_or_overwrite(prompt)

    if not destroy:
        state = transition(state, ReconcileEvent.REUSE)
        creds = recover_credentials(path)
        return ReconciliationResult(
            DECISION_FOR_STATE[state], creds, installation, transition(state, ReconcileEvent.FINISH)
        )

    state = transition(state, ReconcileEvent.DESTROY_CHOSEN)

    answer = prompt.ask(f"Type '{CONFIRM_TOKEN}' to confirm: ")
    confirmed = answer.strip() == CONFIRM_TOKEN

    if not confirmed:
        state = transition(state, ReconcileEvent.DECLINED)
        return ReconciliationResult(DECISION_FOR_STATE[state], creds, installation, state)

    state = transition(state, ReconcileEvent.CONFIRMED)
    destroyer.destroy(path)
    decision = DECISION_FOR_STATE[state]
    return ReconciliationResult(decision, creds, installation, transition(state, ReconcileEvent.FINISH))
