import stat

from dotenv import dotenv_values

from config.settings import DeployConfig
from deploy.reconcile import recover_credentials
from deploy.templates import render_docker_env
from utils.envfile import format_env_value, read_env_value, render_env, update_env_file


def test_read_env_value_missing_file(tmp_path):
    assert read_env_value(tmp_path / 'nope.env', 'KEY') is None


def test_read_env_value_missing_key(tmp_path):
    env = tmp_path / '.env'
    env.write_text("OTHER=1\n")
    assert read_env_value(env, 'KEY') is None


def test_read_env_value_first_match_wins(tmp_path):
    env = tmp_path / '.env'
    env.write_text("KEY=first\nKEY=second\n")
    assert read_env_value(env, 'KEY') == 'first'


def test_read_env_value_is_a_prefix_match(tmp_path):
    env = tmp_path / '.env'
    env.write_text("  KEY=indented\n# KEY=commented\nKEY_2=other\nKEY=real\n")
    assert read_env_value(env, 'KEY') == 'real'


def test_read_env_value_trims_quotes_and_crlf(tmp_path):
    env = tmp_path / '.env'
    env.write_bytes(b'KEY="value"\r\nSINGLE=\'x y\'\nBROKEN="half\nEMPTY=\n')
    assert read_env_value(env, 'KEY') == 'value'
    assert read_env_value(env, 'SINGLE') == 'x y'
    assert read_env_value(env, 'BROKEN') == 'half'
    assert read_env_value(env, 'EMPTY') == ''


def test_format_env_value_quotes_special_characters():
    assert format_env_value('plain') == 'plain'
    assert format_env_value('') == ''
    assert format_env_value(None) == ''
    assert format_env_value('Borealtek Treescout') == '"Borealtek Treescout"'
    assert format_env_value('a"b') == '"a\\"b"'


def test_render_env_keeps_order():
    assert render_env({'B': '2', 'A': '1'}) == "B=2\nA=1\n"


def test_rendered_values_read_back_unchanged(tmp_path):
    values = {'PLAIN': 'abc', 'SPACED': 'two words', 'QUOTED': 'pa"ss\\word', 'HASH': 'a #b'}
    env = tmp_path / '.env'
    env.write_text(render_env(values))

    assert dotenv_values(env, interpolate=False) == values
    for key, value in values.items():
        assert read_env_value(env, key) == value


def test_recovered_credentials_match_written_docker_env(tmp_path):
    config = DeployConfig(
        install_dir=str(tmp_path), domain_name='help.example.com',
        db_root_password='ro"ot\\pw', db_password='pa"ss\\word', db_user='fs user',
    )
    (tmp_path / '.env').write_text(render_docker_env(config, {}))

    creds = recover_credentials(tmp_path)

    assert creds.db_root_password == 'ro"ot\\pw'
    assert creds.db_password == 'pa"ss\\word'
    assert creds.db_user == 'fs user'


def test_update_env_file_replaces_and_appends(tmp_path):
    env = tmp_path / '.env'
    env.write_text("APP_NAME=Laravel\n# DB_HOST=127.0.0.1\nDB_PORT=3306\n")
    env.chmod(0o640)

    update_env_file(env, {'APP_NAME': 'Help Desk', 'DB_HOST': 'db', 'NEW_KEY': 'v'})

    values = dotenv_values(env, interpolate=False)
    assert values['APP_NAME'] == 'Help Desk'
    assert values['DB_HOST'] == 'db'
    assert values['DB_PORT'] == '3306'
    assert values['NEW_KEY'] == 'v'
    assert env.read_text().startswith('APP_NAME="Help Desk"\n')
    assert stat.S_IMODE(env.stat().st_mode) == 0o640
