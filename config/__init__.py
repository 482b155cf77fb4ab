# TREESCOUT v2.0
from pathlib import Path

TOOL_VERSION = "2.0.0"

# Default deploy.yml lives beside main.py
TOOL_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_FILE = TOOL_DIR / 'deploy.yml'

# Application source
DEFAULT_REPO = "https://github.com/Scotchmcdonald/freescout.git"
DEFAULT_BRANCH = "laravel-11-foundation"
DEFAULT_INSTALL_DIR = "/opt/freescout-docker"

# docker: self-signed HTTPS on 443 with a private subnet
# orbstack: local-only port behind a Cloudflare tunnel
PLATFORMS = ('docker', 'orbstack')
DEFAULT_PLATFORM = 'docker'

DEFAULT_DB_USER = 'freescout'
DEFAULT_DB_NAME = 'freescout'
DEFAULT_ADMIN_EMAIL = 'admin@freescout.local'

# Role users seeded by UserSeeder: key -> (email, password, first, last)
ROLE_USER_DEFAULTS = {
    'agent': ('agent@example.com', 'agent123456789', 'Support', 'Agent'),
    'finance': ('finance@example.com', 'finance123456789', 'Finance', 'Manager'),
    'reporter': ('reporter@example.com', 'reporter123456789', 'Report', 'Viewer'),
}

# Format: Name|RepoURL|TokenEnvVar|branch
DEFAULT_MODULES = [
    f"{name}|https://github.com/BorealTek/{name}-Module.git|REPO_TOKEN|main"
    for name in (
        'Action1', 'Alerts', 'AssetManagement', 'ClientPortal',
        'ContractManager', 'Crm', 'DevFeedback', 'EmailMigration',
        'GoogleAdmin', 'KnowledgeBase', 'PIB', 'Payment',
        'SoftwareSubscriptions', 'WidgetRegistry',
    )
]

# Images
DB_IMAGE = 'mariadb:10.6'
REDIS_IMAGE = 'redis:alpine'
TUNNEL_IMAGE = 'cloudflare/cloudflared:latest'
APP_IMAGE = 'freescout-app'

# Named volume holding the MariaDB data directory
DB_VOLUME = 'db_data'

# Readiness polling
DB_READY_ATTEMPTS = 30
APP_READY_ATTEMPTS = 30
READY_INTERVAL_SECONDS = 2

# Minimum recommended memory (kB, as reported by /proc/meminfo)
MIN_MEMORY_KB = 2_000_000

# Environment passthrough into the docker .env
PASSTHROUGH_SUFFIXES = ('_TOKEN', '_KEY', '_SECRET')
RESERVED_ENV_PREFIXES = ('DB_', 'APP_', 'REDIS_', 'GOOGLE_', 'REVERB_', 'TUNNEL_')

COMPOSER_TIMEOUT = '2000'
