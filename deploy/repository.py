# TREESCOUT v2.0 - Application and module source checkouts
import logging
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from cli.ui import show_info, show_step_detail, show_warning
from utils.errors import CommandFailed, ConfigurationError, OperatorAbort
from utils.executor import check, redact_text, run_best_effort
from utils.validation import validate_module_name

_log = logging.getLogger(__name__)

RESET_CHOICE = "Discard local changes (git reset --hard)"
RECLONE_CHOICE = "Nuke & Re-clone (Delete src and download fresh)"
EXIT_CHOICE = "Exit and fix manually"


class ModuleSpec:
    '''One plugin module: where to clone it from and which token unlocks it'''

    def __init__(self, name, repo_url, token_var='', branch=''):
        self.name = name
        self.repo_url = repo_url
        self.token_var = token_var or ''
        self.branch = branch or ''

    def __repr__(self):
        return f"ModuleSpec({self.name!r}, {self.repo_url!r})"

    def __eq__(self, other):
        return isinstance(other, ModuleSpec) and vars(self) == vars(other)


def parse_module_entry(entry):
    '''Accepts "Name|URL|TOKEN_VAR|branch" strings or mappings.
    Raises ConfigurationError for entries without name or URL.
    '''
    if isinstance(entry, ModuleSpec):
        return entry

    if isinstance(entry, dict):
        name = entry.get('name', '')
        repo_url = entry.get('repo_url') or entry.get('url', '')
        token_var = entry.get('token_var', '')
        branch = entry.get('branch', '')
    elif isinstance(entry, str):
        parts = entry.split('|') + [''] * 4
        name, repo_url, token_var, branch = (p.strip() for p in parts[:4])
    else:
        raise ConfigurationError(f"Invalid module entry: {entry!r}")

    if not name or not repo_url:
        raise ConfigurationError(f"Invalid module entry: {entry!r}")

    return ModuleSpec(validate_module_name(name), repo_url, token_var, branch)


def authenticated_url(url, token):
    '''Inject an OAuth token into an https URL: https://oauth2:<token>@host/path'''
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme != 'https':
        return url
    host = parts.netloc.rsplit('@', 1)[-1]
    return urlunsplit((parts.scheme, f"oauth2:{token}@{host}", parts.path, parts.query, parts.fragment))


def redact(url):
    '''Hide credentials embedded in a URL'''
    return redact_text(url)


def _git(executor, args, cwd=None, message=None):
    return executor.run(['git'] + list(args), cwd=cwd, message=message)


def clone(executor, url, target, branch=None, step="git clone"):
    args = ['clone']
    if branch:
        args += ['-b', branch]
    args += [url, str(target)]
    return check(
        _git(executor, args, message=f"Cloning {branch or 'default branch'}"),
        step,
    )


def _resolve_pull_conflict(config, executor, prompt, interactive):
    src = config.src_path
    if not interactive:
        raise CommandFailed(
            "git pull", hint="Cannot handle git conflict in non-interactive mode"
        )

    choice = prompt.choose("Git pull failed! Local changes detected", [
        RESET_CHOICE, RECLONE_CHOICE, EXIT_CHOICE,
    ])

    if choice == RESET_CHOICE:
        show_info(f"Resetting to origin/{config.branch}...")
        check(_git(executor, ['reset', '--hard', f"origin/{config.branch}"], cwd=src),
              "git reset --hard")
    elif choice == RECLONE_CHOICE:
        show_warning("Nuking source directory...")
        check(executor.run(['rm', '-rf', str(src)]), "Removing source directory")
        clone(executor, config.repo_url, src, config.branch)
    else:
        raise OperatorAbort("Aborting. Please fix git conflicts manually.")


def clone_or_update_source(config, executor, prompt, interactive):
    '''Clone config.repo_url into src, or sync an existing checkout to config.branch'''
    src = config.src_path

    if not src.is_dir():
        show_info(f"Cloning branch '{config.branch}'...")
        clone(executor, config.repo_url, src, config.branch)
        return 'cloned'

    show_info("Source folder exists. Syncing...")
    run_best_effort(
        executor,
        ['git', 'config', '--global', '--add', 'safe.directory', str(src)],
        "git safe.directory",
    )
    check(_git(executor, ['remote', 'set-url', 'origin', config.repo_url], cwd=src),
          "git remote set-url")
    check(_git(executor, ['fetch', 'origin'], cwd=src, message="Fetching from origin"),
          "git fetch")

    if not _git(executor, ['checkout', config.branch], cwd=src).ok:
        check(_git(executor, ['checkout', '-b', config.branch, f"origin/{config.branch}"], cwd=src),
              f"git checkout {config.branch}")

    pull = _git(executor, ['pull', 'origin', config.branch], cwd=src, message="Pulling latest changes")
    if not pull.ok:
        show_warning("Git pull failed! Local changes detected.")
        _resolve_pull_conflict(config, executor, prompt, interactive)
        return 'resolved'

    return 'updated'


def _update_module(executor, module, target):
    show_step_detail(f"Module {module.name} already exists. Updating...")
    if not _git(executor, ['fetch', 'origin'], cwd=target).ok:
        return False
    if module.branch:
        if not _git(executor, ['checkout', module.branch], cwd=target).ok:
            if not _git(executor, ['checkout', '-b', module.branch, f"origin/{module.branch}"],
                        cwd=target).ok:
                return False
        return _git(executor, ['pull', 'origin', module.branch], cwd=target).ok
    return _git(executor, ['pull'], cwd=target).ok


def install_modules(config, executor):
    '''
    Clone or update every configured module under src/Modules.
    Module failures are reported and skipped; returns {name: status}.
    '''
    if not config.modules:
        show_info("No modules configured to install.")
        return {}

    modules_dir = config.src_path / 'Modules'
    modules_dir.mkdir(parents=True, exist_ok=True)

    results = {}
    for entry in config.modules:
        try:
            module = parse_module_entry(entry)
        except ConfigurationError as e:
            show_warning(str(e))
            continue

        target = modules_dir / module.name

        if target.is_dir():
            ok = _update_module(executor, module, target)
            if not ok:
                show_warning(f"Failed to update module {module.name}")
            results[module.name] = 'updated' if ok else 'update_failed'
            continue

        show_step_detail(f"Installing module: {module.name}")
        url = module.repo_url
        if module.token_var:
            token = config.token(module.token_var)
            if token:
                url = authenticated_url(module.repo_url, token)
            else:
                show_warning(f"Token variable {module.token_var} is not set or empty.")

        args = ['clone']
        if module.branch:
            args += ['-b', module.branch]
        args += [url, str(target)]
        result = _git(executor, args)
        if result.ok:
            results[module.name] = 'installed'
        else:
            _log.warning("git clone %s failed (exit %s)", redact(url), result.returncode)
            show_warning(f"Failed to clone {module.name}")
            results[module.name] = 'clone_failed'

    return results


def current_branch(executor, src):
    result = check(_git(executor, ['rev-parse', '--abbrev-ref', 'HEAD'], cwd=src),
                   "git rev-parse")
    return result.output.strip()


def has_uncommitted_changes(executor, src):
    result = check(_git(executor, ['status', '--porcelain'], cwd=src), "git status")
    return bool(result.output.strip())


def list_module_dirs(src):
    modules_dir = Path(src) / 'Modules'
    if not modules_dir.is_dir():
        return []
    return sorted(p.name for p in modules_dir.iterdir() if p.is_dir())
