"""
Deployment context record and its YAML persistence.

A DeployConfig is built once per run (saved deploy.yml, then command-line
overrides, then wizard answers, then recovered credentials) and handed to
every stage explicitly.
"""
import logging
import os
import secrets
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from config import (
    DEFAULT_ADMIN_EMAIL, DEFAULT_BRANCH, DEFAULT_DB_NAME, DEFAULT_DB_USER,
    DEFAULT_INSTALL_DIR, DEFAULT_MODULES, DEFAULT_PLATFORM, DEFAULT_REPO,
    PLATFORMS,
)
from utils.errors import ConfigurationError

_log = logging.getLogger(__name__)


@dataclass
class DeployConfig:
    # Installation
    repo_url: str = DEFAULT_REPO
    branch: str = DEFAULT_BRANCH
    install_dir: str = DEFAULT_INSTALL_DIR
    platform: str = DEFAULT_PLATFORM

    # Network
    domain_name: str = ''
    docker_subnet: str = ''
    tunnel_token: str = ''

    # Database
    db_root_password: str = ''
    db_user: str = ''
    db_password: str = ''
    db_name: str = ''

    # Admin user
    admin_email: str = ''
    admin_password: str = ''
    admin_first_name: str = 'System'
    admin_last_name: str = 'Administrator'

    # Role users: {'agent': {'email': ..., 'password': ...}, ...}
    users: Dict[str, Dict[str, str]] = field(default_factory=dict)

    # Google OAuth
    google_client_id: str = ''
    google_client_secret: str = ''
    google_admin_emails: str = ''
    google_allowed_domains: str = ''

    # Mailbox auto-provisioning
    mailbox: Dict[str, str] = field(default_factory=dict)

    seed_sample_data: bool = False

    # Access tokens referenced by modules, e.g. {'REPO_TOKEN': 'ghp_...'}
    tokens: Dict[str, str] = field(default_factory=dict)
    modules: List = field(default_factory=lambda: list(DEFAULT_MODULES))

    # Runtime state (never persisted)
    interactive: bool = True
    reuse_existing_data: bool = False
    admin_password_preserved: bool = False

    RUNTIME_FIELDS = ('interactive', 'reuse_existing_data', 'admin_password_preserved')

    @property
    def install_path(self) -> Path:
        return Path(self.install_dir)

    @property
    def src_path(self) -> Path:
        return self.install_path / 'src'

    @property
    def app_url(self) -> str:
        return f"https://{self.domain_name}"

    def token(self, name: str) -> str:
        '''Look up an access token: saved tokens first, then the environment'''
        if not name:
            return ''
        return self.tokens.get(name) or os.environ.get(name, '')

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            if f.name in self.RUNTIME_FIELDS:
                continue
            data[f.name] = getattr(self, f.name)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'DeployConfig':
        known = {f.name for f in fields(cls)} - set(cls.RUNTIME_FIELDS)
        unknown = set(data) - known
        if unknown:
            _log.warning("Ignoring unknown config keys: %s", ', '.join(sorted(unknown)))

        values = {k: v for k, v in data.items() if k in known and v is not None}
        cfg = cls(**values)
        if cfg.platform not in PLATFORMS:
            raise ConfigurationError(
                f"Unknown platform '{cfg.platform}' (expected one of: {', '.join(PLATFORMS)})"
            )
        if cfg.modules is None:
            cfg.modules = []
        return cfg


def load_deploy_config(path) -> Optional[DeployConfig]:
    '''Load deploy.yml. Returns None when the file does not exist.'''
    path = Path(path)
    if not path.exists():
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping of settings")

    return DeployConfig.from_dict(data)


def save_deploy_config(cfg: DeployConfig, path):
    '''Write deploy.yml (secrets included, file mode 0600)'''
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    header = (
        "#===============================================================================\n"
        "# FreeScout Deployment Configuration\n"
        "#===============================================================================\n"
    )
    with open(path, 'w', encoding='utf-8') as f:
        f.write(header)
        yaml.safe_dump(cfg.to_dict(), f, default_flow_style=False, sort_keys=False)

    try:
        os.chmod(path, 0o600)
    except OSError:
        pass

    # Hand the file back to the invoking user when run through sudo
    sudo_uid = os.environ.get('SUDO_UID')
    sudo_gid = os.environ.get('SUDO_GID')
    if sudo_uid and sudo_gid and hasattr(os, 'chown'):
        try:
            os.chown(path, int(sudo_uid), int(sudo_gid))
        except (OSError, ValueError):
            _log.debug("Could not chown %s to invoking user", path)


def generate_secret(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def apply_credential_defaults(cfg: DeployConfig) -> DeployConfig:
    '''Fill unset credentials. Values already present (saved or recovered) win.'''
    if not cfg.db_root_password:
        cfg.db_root_password = generate_secret(16)
    if not cfg.db_user:
        cfg.db_user = DEFAULT_DB_USER
    if not cfg.db_password:
        cfg.db_password = generate_secret(16)
    if not cfg.db_name:
        cfg.db_name = DEFAULT_DB_NAME
    if not cfg.admin_email:
        cfg.admin_email = DEFAULT_ADMIN_EMAIL
    if not cfg.admin_password:
        cfg.admin_password = generate_secret(12)
    return cfg
