import yaml

from config.settings import DeployConfig
from deploy import templates


def _config(platform='docker', **overrides):
    values = dict(
        install_dir='/opt/fs',
        platform=platform,
        domain_name='help.example.com',
        docker_subnet='192.168.220.0/24',
        tunnel_token='tunnel-abc',
        db_root_password='root',
        db_user='fs',
        db_password='pw',
        db_name='freescout',
        admin_email='admin@example.com',
        admin_password='adminpw',
    )
    values.update(overrides)
    return DeployConfig(**values)


def test_dockerfile_php_version_per_platform():
    assert 'serversideup/php:8.3-fpm-nginx' in templates.render_dockerfile('docker')
    assert 'serversideup/php:8.2-fpm-nginx' in templates.render_dockerfile('orbstack')
    assert 'redis sockets pcntl' in templates.render_dockerfile('docker')


def test_dockerfile_keeps_shell_escapes():
    dockerfile = templates.render_dockerfile('docker')
    # printf turns %% into % when the image is built
    assert "stat -c '%%g'" in dockerfile
    assert '{php' not in dockerfile


def test_nginx_config_proxies_websockets():
    conf = templates.render_nginx_config()
    assert 'listen 8080 ssl' in conf
    assert 'location /app/' in conf
    assert 'proxy_pass http://reverb_backend' in conf


def test_compose_docker_platform():
    compose = templates.build_compose(_config('docker'), '998')
    services = compose['services']

    assert list(services) == ['app', 'db', 'redis', 'queue', 'cron', 'reverb']
    assert services['app']['ports'] == ['443:8080']
    assert services['reverb']['ports'] == ['6001:8080']
    assert 'DOCKER_GID=998' in services['app']['environment']
    assert compose['networks']['fs-net']['ipam'] == {'config': [{'subnet': '192.168.220.0/24'}]}


def test_compose_orbstack_platform():
    compose = templates.build_compose(_config('orbstack'), '999')
    services = compose['services']

    assert services['app']['ports'] == ['127.0.0.1:8080:8080']
    assert 'ports' not in services['reverb']
    assert services['tunnel']['environment'] == ['TUNNEL_TOKEN=${TUNNEL_TOKEN}']
    assert 'DB_HOST=db' in services['app']['environment']
    assert 'ipam' not in compose['networks']['fs-net']


def test_render_compose_is_valid_yaml():
    text = templates.render_compose(_config(), '999')
    data = yaml.safe_load(text)
    assert data['services']['db']['image'] == 'mariadb:10.6'
    assert data['volumes'] == {'db_data': None}
    assert data['services']['app']['volumes'][0] == './src:/var/www/html'


def test_passthrough_excludes_reserved_prefixes():
    environ = {
        'REPO_TOKEN': 'ghp',
        'STRIPE_SECRET': 's',
        'MAPS_KEY': 'k',
        'DB_SECRET': 'no',
        'APP_KEY': 'no',
        'REDIS_TOKEN': 'no',
        'GOOGLE_CLIENT_SECRET': 'no',
        'REVERB_APP_KEY': 'no',
        'TUNNEL_TOKEN': 'no',
        'HOME': '/root',
    }
    assert dict(templates.passthrough_environment(environ)) == {
        'MAPS_KEY': 'k', 'REPO_TOKEN': 'ghp', 'STRIPE_SECRET': 's',
    }


def test_docker_env_per_platform():
    docker = templates.docker_env_values(_config('docker', google_client_id='gid'), environ={})
    assert docker['DB_PASSWORD'] == 'pw'
    assert docker['APP_URL'] == 'https://help.example.com'
    assert docker['GOOGLE_CLIENT_ID'] == 'gid'
    assert 'TUNNEL_TOKEN' not in docker

    orb = templates.docker_env_values(_config('orbstack'), environ={})
    assert orb['TUNNEL_TOKEN'] == 'tunnel-abc'
    assert 'GOOGLE_CLIENT_ID' not in orb


def test_docker_env_environment_overrides_saved_token():
    config = _config(tokens={'REPO_TOKEN': 'saved', 'DB_TOKEN': 'ignored'})
    values = templates.docker_env_values(config, environ={'REPO_TOKEN': 'exported'})
    assert values['REPO_TOKEN'] == 'exported'
    assert 'DB_TOKEN' not in values


def test_render_docker_env_is_recoverable(tmp_path):
    from deploy.reconcile import recover_credentials

    (tmp_path / '.env').write_text(templates.render_docker_env(_config(), environ={}))
    creds = recover_credentials(tmp_path)
    assert creds.db_password == 'pw'
    assert creds.db_root_password == 'root'
    assert creds.db_name == 'freescout'
    assert creds.db_user == 'fs'


def test_update_script_uses_branch_and_compose():
    script = templates.render_update_script(_config(branch='main'), ['docker', 'compose'], sudo=True)
    assert script.startswith('#!/usr/bin/env bash')
    assert 'git pull origin main' in script
    assert 'sudo docker compose build app' in script


def test_reverb_secrets_lengths():
    secrets = templates.generate_reverb_secrets()
    assert len(secrets['app_id']) == 16
    assert len(secrets['app_key']) == 32
    assert len(secrets['app_secret']) == 32


def test_laravel_env_updates():
    reverb = {'app_id': 'i', 'app_key': 'k', 'app_secret': 's'}
    config = _config(users={'agent': {'email': 'a@corp.io'}})

    values = templates.laravel_env_updates(config, reverb)

    assert values['APP_URL'] == 'https://help.example.com'
    assert values['DB_HOST'] == 'db'
    assert values['DB_PASSWORD'] == 'pw'
    assert values['ADMIN_EMAIL'] == 'admin@example.com'
    assert values['AGENT_EMAIL'] == 'a@corp.io'
    assert values['AGENT_PASSWORD'] == 'agent123456789'
    assert values['FINANCE_EMAIL'] == 'finance@example.com'
    assert values['REVERB_APP_KEY'] == 'k'
    assert values['VITE_REVERB_HOST'] == 'help.example.com'
    assert 'GOOGLE_CLIENT_ID' not in values


def test_laravel_env_updates_google_and_mailbox():
    reverb = {'app_id': 'i', 'app_key': 'k', 'app_secret': 's'}
    config = _config(google_client_id='gid', google_client_secret='gs',
                     mailbox={'email': 'support@corp.io', 'imap_port': 993, 'smtp_host': ''})

    values = templates.laravel_env_updates(config, reverb)

    assert values['GOOGLE_REDIRECT_URI'] == 'https://help.example.com/auth/google/callback'
    assert values['MAILBOX_EMAIL'] == 'support@corp.io'
    assert values['MAILBOX_IMAP_PORT'] == '993'
    assert 'MAILBOX_SMTP_HOST' not in values
