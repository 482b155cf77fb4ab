# TREESCOUT v2.0 - Generated configuration files
import os
import secrets
from collections import OrderedDict

import yaml

from config import (
    APP_IMAGE, COMPOSER_TIMEOUT, DB_IMAGE, DB_VOLUME, PASSTHROUGH_SUFFIXES,
    RESERVED_ENV_PREFIXES, REDIS_IMAGE, ROLE_USER_DEFAULTS, TUNNEL_IMAGE,
)
from utils.envfile import render_env

PHP_VERSIONS = {'docker': '8.3', 'orbstack': '8.2'}
PHP_EXTENSIONS = {
    'docker': 'imap gmp soap intl bcmath gd redis sockets pcntl zip',
    'orbstack': 'imap gmp soap intl bcmath gd',
}

DOCKERFILE_TEMPLATE = r'''FROM serversideup/php:{php_version}-fpm-nginx

USER root

# System dependencies, cron, Node.js 22.x, MySQL client
RUN apt-get update && apt-get install -y gnupg curl ca-certificates unzip git cron default-mysql-client && \
    install -m 0755 -d /etc/apt/keyrings && \
    curl -fsSL https://download.docker.com/linux/debian/gpg -o /etc/apt/keyrings/docker.asc && \
    chmod a+r /etc/apt/keyrings/docker.asc && \
    echo "deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.asc] https://download.docker.com/linux/debian bookworm stable" | tee /etc/apt/sources.list.d/docker.list > /dev/null && \
    apt-get update && \
    apt-get install -y docker-ce-cli docker-compose-plugin || apt-get install -y docker.io docker-buildx || true && \
    curl -fsSL https://deb.nodesource.com/setup_22.x | bash - && \
    apt-get install -y nodejs && \
    curl -sSLf \
        -o /usr/local/bin/install-php-extensions \
        https://github.com/mlocati/docker-php-extension-installer/releases/latest/download/install-php-extensions && \
    chmod +x /usr/local/bin/install-php-extensions && \
    install-php-extensions {php_extensions} && \
    apt-get clean && \
    rm -rf /var/lib/apt/lists/*

# Give www-data the group of the mounted docker socket at startup
RUN mkdir -p /etc/entrypoint.d && \
    printf "#!/bin/sh\n\
if [ -S /var/run/docker.sock ]; then\n\
    SOCK_GID=\$(stat -c '%%g' /var/run/docker.sock)\n\
    echo \"Fixing docker socket permissions (GID: \$SOCK_GID)...\"\n\
    if getent group \$SOCK_GID; then\n\
        GROUP_NAME=\$(getent group \$SOCK_GID | cut -d: -f1)\n\
        usermod -aG \$GROUP_NAME www-data\n\
    else\n\
        groupadd -g \$SOCK_GID docker_sock_runtime\n\
        usermod -aG docker_sock_runtime www-data\n\
    fi\n\
fi\n" > /etc/entrypoint.d/99-fix-docker-sock.sh && \
    chmod +x /etc/entrypoint.d/99-fix-docker-sock.sh

# Runs as root so the entrypoint can fix permissions; PHP-FPM drops to www-data
'''

NGINX_CONFIG = r'''upstream reverb_backend {
    server reverb:8080;
}

server {
    listen 8080 ssl http2 default_server;
    server_name _;
    root /var/www/html/public;
    index index.php index.html;
    client_max_body_size 20M;

    ssl_certificate /etc/nginx/ssl/cert.pem;
    ssl_certificate_key /etc/nginx/ssl/key.pem;
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_ciphers HIGH:!aNULL:!MD5;
    ssl_prefer_server_ciphers on;

    # WebSocket requests go to the Reverb container
    location /app/ {
        proxy_pass http://reverb_backend;
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_read_timeout 86400;
    }

    location / {
        try_files $uri $uri/ /index.php?$query_string;
    }

    location ~ \.php$ {
        fastcgi_split_path_info ^(.+\.php)(/.+)$;
        fastcgi_pass 127.0.0.1:9000;
        fastcgi_index index.php;
        include fastcgi_params;
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        fastcgi_param PATH_INFO $fastcgi_path_info;
        fastcgi_param HTTPS on;
    }

    location ~* ^/storage/attachment/ {
        expires 1M;
        access_log off;
        try_files $uri $uri/ /index.php?$query_string;
    }

    location ~* ^/(?:css|js)/.*\.(?:css|js)$ {
        expires 2d;
        access_log off;
        add_header Cache-Control "public, must-revalidate";
    }

    location ~ /\. {
        deny all;
    }
}
'''

REVERB_COMMAND = (
    "sh -c 'while [ ! -f /var/www/html/vendor/autoload.php ]; do "
    "echo \"Waiting for composer dependencies to be installed...\"; sleep 5; done; "
    "echo \"Dependencies ready, starting Reverb...\"; "
    "php artisan reverb:start --host=\"0.0.0.0\" --port=8080'"
)

CRON_COMMAND = (
    "/bin/sh -c 'echo \"* * * * * cd /var/www/html && php artisan schedule:run "
    ">> /var/log/cron.log 2>&1\" | crontab - && echo \"Starting cron...\" && cron -f'"
)

QUEUE_COMMAND = (
    "php artisan queue:work --queue=emails,default,long-running "
    "--sleep=3 --tries=3 --max-time=3600"
)

DB_COMMAND = (
    "--transaction-isolation=READ-COMMITTED --binlog-format=ROW "
    "--innodb-file-per-table=1 --skip-innodb-read-only-compressed --skip-ssl"
)

# Runs inside `php artisan tinker`
KNOWLEDGE_BASE_SEEDER = r'''
$modules = Module::all();
foreach($modules as $module) {
    if (!$module->isEnabled()) continue;
    $seeder = "Modules\\" . $module->getName() . "\\Database\\Seeders\\KnowledgeBaseSeeder";
    if (class_exists($seeder)) {
        echo "Seeding " . $module->getName() . "...\n";
        Artisan::call("db:seed", ["--class" => $seeder, "--force" => true]);
    }
}
'''


def render_dockerfile(platform='docker'):
    return DOCKERFILE_TEMPLATE.format(
        php_version=PHP_VERSIONS[platform],
        php_extensions=PHP_EXTENSIONS[platform],
    )


def render_nginx_config():
    return NGINX_CONFIG


def _healthcheck(test, interval, timeout, retries, start_period=None):
    check = {'test': test, 'interval': interval, 'timeout': timeout, 'retries': retries}
    if start_period:
        check['start_period'] = start_period
    return check


def _worker(command, environment, extra=None):
    service = {
        'image': APP_IMAGE,
        'restart': 'unless-stopped',
    }
    if command:
        service['command'] = command
    if environment:
        service['environment'] = environment
    service['volumes'] = ['./src:/var/www/html']
    if extra:
        service.update(extra)
    service['depends_on'] = ['app', 'db', 'redis']
    service['networks'] = ['fs-net']
    return service


def build_compose(config, docker_gid):
    '''Return the docker-compose structure for config.platform'''
    tunnel = config.platform == 'orbstack'
    src_host_path = str(config.src_path)

    app_env = [
        'PUID=33',
        'PGID=33',
        f'DOCKER_GID={docker_gid}',
        f'HOST_SRC_PATH={src_host_path}',
        'PHP_MEMORY_LIMIT=512M',
        'PHP_OPCACHE_ENABLE=1',
        'PHP_POST_MAX_SIZE=20M',
        'PHP_UPLOAD_MAX_FILESIZE=20M',
    ]
    if tunnel:
        app_env += [
            'DB_CONNECTION=mysql',
            'DB_HOST=db',
            'DB_PORT=3306',
            'DB_DATABASE=${DB_DATABASE}',
            'DB_USERNAME=${DB_USER}',
            'DB_PASSWORD=${DB_PASSWORD}',
        ]

    services = OrderedDict()
    services['app'] = {
        'build': {'context': '.', 'args': {'DOCKER_GID': str(docker_gid)}},
        'image': APP_IMAGE,
        'restart': 'unless-stopped',
        # Local only on orbstack, the tunnel handles public traffic
        'ports': ['127.0.0.1:8080:8080' if tunnel else '443:8080'],
        'environment': app_env,
        'volumes': [
            './src:/var/www/html',
            './nginx/default.conf:/etc/nginx/conf.d/default.conf',
            './nginx/ssl:/etc/nginx/ssl',
            # Sibling containers (EmailMigration test mail servers)
            '/var/run/docker.sock:/var/run/docker.sock',
        ],
        'depends_on': {
            'db': {'condition': 'service_healthy'},
            'redis': {'condition': 'service_started'},
        },
        'networks': ['fs-net'],
        'healthcheck': _healthcheck(
            ['CMD', 'curl', '-fk', 'https://localhost:8080'], '30s', '10s', 3, '40s'
        ),
    }
    services['db'] = {
        'image': DB_IMAGE,
        'restart': 'unless-stopped',
        'command': DB_COMMAND,
        'environment': {
            'MARIADB_ROOT_PASSWORD': '${DB_ROOT_PASSWORD}',
            'MARIADB_DATABASE': '${DB_DATABASE}',
            'MARIADB_USER': '${DB_USER}',
            'MARIADB_PASSWORD': '${DB_PASSWORD}',
        },
        'volumes': [f'{DB_VOLUME}:/var/lib/mysql'],
        'networks': ['fs-net'],
        'healthcheck': _healthcheck(
            ['CMD', 'healthcheck.sh', '--connect', '--innodb_initialized'], '10s', '5s', 5
        ),
    }
    services['redis'] = {
        'image': REDIS_IMAGE,
        'restart': 'unless-stopped',
        'networks': ['fs-net'],
        'healthcheck': _healthcheck(['CMD', 'redis-cli', 'ping'], '10s', '5s', 5),
    }
    services['queue'] = _worker(
        QUEUE_COMMAND, ['PHP_MEMORY_LIMIT=512M', 'PHP_OPCACHE_ENABLE=1'],
        extra={'restart': 'always'},
    )
    services['cron'] = _worker(CRON_COMMAND, None)
    services['reverb'] = _worker(
        REVERB_COMMAND, ['PHP_OPCACHE_ENABLE=1'],
        extra=None if tunnel else {'ports': ['6001:8080']},
    )

    network = {'driver': 'bridge'}
    if tunnel:
        services['tunnel'] = {
            'image': TUNNEL_IMAGE,
            'restart': 'unless-stopped',
            'command': 'tunnel run',
            'environment': ['TUNNEL_TOKEN=${TUNNEL_TOKEN}'],
            'networks': ['fs-net'],
        }
    else:
        network['ipam'] = {'config': [{'subnet': config.docker_subnet}]}

    return {
        'services': dict(services),
        'networks': {'fs-net': network},
        'volumes': {DB_VOLUME: None},
    }


def render_compose(config, docker_gid):
    return yaml.dump(
        build_compose(config, docker_gid),
        default_flow_style=False,
        sort_keys=False,
        width=1000,
    )


def passthrough_environment(environ=None):
    '''Tokens, keys and secrets from the environment for module access'''
    environ = os.environ if environ is None else environ
    passed = OrderedDict()
    for key in sorted(environ):
        if not key.endswith(PASSTHROUGH_SUFFIXES):
            continue
        if key.startswith(RESERVED_ENV_PREFIXES):
            continue
        passed[key] = environ[key]
    return passed


def docker_env_values(config, environ=None):
    values = OrderedDict()
    values['DB_ROOT_PASSWORD'] = config.db_root_password
    values['DB_DATABASE'] = config.db_name
    values['DB_USER'] = config.db_user
    values['DB_PASSWORD'] = config.db_password
    values['APP_URL'] = config.app_url
    values['REDIS_HOST'] = 'redis'
    if config.platform == 'orbstack':
        values['REDIS_PORT'] = '6379'
        values['TUNNEL_TOKEN'] = config.tunnel_token
    else:
        values['REDIS_PASSWORD'] = 'null'
        values['REDIS_PORT'] = '6379'
        values['GOOGLE_CLIENT_ID'] = config.google_client_id
        values['GOOGLE_CLIENT_SECRET'] = config.google_client_secret
        values['GOOGLE_REDIRECT_URI'] = f"{config.app_url}/auth/google/callback"

    # Saved tokens first so an exported variable of the same name wins
    for name, token in sorted(config.tokens.items()):
        if token and not name.startswith(RESERVED_ENV_PREFIXES):
            values[name] = token
    values.update(passthrough_environment(environ))
    return values


def render_docker_env(config, environ=None):
    return render_env(docker_env_values(config, environ))


def render_update_script(config, compose_command=('docker', 'compose'), sudo=False):
    compose = ' '.join(compose_command)
    if sudo:
        compose = f"sudo {compose}"
    branch = config.branch
    return f'''#!/usr/bin/env bash
set -euo pipefail

echo "🔄 Updating FreeScout ({branch})..."

cd src
git fetch origin
git checkout {branch}
git pull origin {branch}
cd ..

echo "🐳 Rebuilding containers..."
{compose} build app
{compose} up -d

echo "🗄️  Running migrations..."
{compose} exec -T app php artisan migrate --force

echo "📦 Installing dependencies..."
{compose} exec -e COMPOSER_PROCESS_TIMEOUT={COMPOSER_TIMEOUT} -T app composer update --no-dev --optimize-autoloader
{compose} exec -T app npm install
{compose} exec -T app npm run build

echo "🧹 Clearing caches..."
{compose} exec -T app php artisan optimize:clear
{compose} exec -T app php artisan freescout:clear-cache

echo "✅ Update complete!"
'''


def generate_reverb_secrets():
    return {
        'app_id': secrets.token_hex(8),
        'app_key': secrets.token_hex(16),
        'app_secret': secrets.token_hex(16),
    }


def role_user(config, role):
    '''(email, password, first, last) for a seeded role user, with defaults'''
    email, password, first, last = ROLE_USER_DEFAULTS[role]
    overrides = config.users.get(role) or {}
    return (
        overrides.get('email') or email,
        overrides.get('password') or password,
        overrides.get('first_name') or first,
        overrides.get('last_name') or last,
    )


def laravel_env_updates(config, reverb):
    '''Ordered values written into src/.env on top of .env.example'''
    values = OrderedDict()
    values['APP_NAME'] = 'BorealTek Treescout'
    values['APP_URL'] = config.app_url

    values['DB_CONNECTION'] = 'mysql'
    values['DB_HOST'] = 'db'
    values['DB_PORT'] = '3306'
    values['DB_DATABASE'] = config.db_name
    values['DB_USERNAME'] = config.db_user
    values['DB_PASSWORD'] = config.db_password

    values['CACHE_STORE'] = 'redis'
    values['SESSION_DRIVER'] = 'redis'
    values['REDIS_HOST'] = 'redis'

    values['ADMIN_EMAIL'] = config.admin_email
    values['ADMIN_PASSWORD'] = config.admin_password
    values['ADMIN_FIRST_NAME'] = config.admin_first_name
    values['ADMIN_LAST_NAME'] = config.admin_last_name

    for role in ROLE_USER_DEFAULTS:
        email, password, first, last = role_user(config, role)
        prefix = role.upper()
        values[f'{prefix}_EMAIL'] = email
        values[f'{prefix}_PASSWORD'] = password
        values[f'{prefix}_FIRST_NAME'] = first
        values[f'{prefix}_LAST_NAME'] = last

    values['BROADCAST_CONNECTION'] = 'reverb'
    values['REVERB_APP_ID'] = reverb['app_id']
    values['REVERB_APP_KEY'] = reverb['app_key']
    values['REVERB_APP_SECRET'] = reverb['app_secret']
    values['REVERB_HOST'] = 'reverb'
    values['REVERB_PORT'] = '8080'
    values['REVERB_SCHEME'] = 'http'
    values['VITE_REVERB_APP_KEY'] = reverb['app_key']
    values['VITE_REVERB_HOST'] = config.domain_name
    values['VITE_REVERB_PORT'] = '443'
    values['VITE_REVERB_SCHEME'] = 'https'

    if config.google_client_id:
        values['GOOGLE_CLIENT_ID'] = config.google_client_id
        values['GOOGLE_CLIENT_SECRET'] = config.google_client_secret
        values['GOOGLE_REDIRECT_URI'] = f"{config.app_url}/auth/google/callback"
        values['GOOGLE_ADMIN_EMAILS'] = config.google_admin_emails
        values['GOOGLE_ALLOWED_DOMAINS'] = config.google_allowed_domains

    mailbox = config.mailbox or {}
    if mailbox.get('email'):
        for key in ('email', 'name', 'imap_host', 'imap_port', 'imap_user', 'imap_pass',
                    'smtp_host', 'smtp_port', 'smtp_user', 'smtp_pass'):
            if mailbox.get(key) not in (None, ''):
                values[f'MAILBOX_{key.upper()}'] = str(mailbox[key])

    return values
