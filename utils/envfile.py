# TREESCOUT v2.0 - Flat KEY=VALUE files
import io
import os
import re
from pathlib import Path

from dotenv import dotenv_values, set_key

QUOTE_CHARS = '"\''


def _decode(key, raw):
    '''Decode one raw value with dotenv's quoting rules (no interpolation)'''
    value = dotenv_values(stream=io.StringIO(f"{key}={raw}\n"), interpolate=False).get(key)
    if value is None:
        # Unparseable (e.g. unbalanced quotes): trim like the shell scripts did
        return raw.strip().strip(QUOTE_CHARS)
    return value


def read_env_value(path, key):
    '''Return the value of the first ^KEY= line, quotes removed.
    Returns None if the file or the key is missing.
    '''
    path = Path(path)
    if not path.is_file():
        return None

    prefix = f"{key}="
    try:
        with open(path, 'r', encoding='utf-8', errors='ignore') as f:
            for line in f:
                if line.startswith(prefix):
                    return _decode(key, line[len(prefix):].rstrip('\r\n'))
    except OSError:
        return None
    return None


def format_env_value(value):
    '''Double-quote values containing spaces or shell-sensitive characters'''
    if value is None:
        return ''
    value = str(value)
    if value and re.search(r'[\s#"\'$`\\]', value):
        escaped = value.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return value


def render_env(mapping):
    '''Render a mapping as KEY=VALUE lines'''
    return ''.join(f"{key}={format_env_value(value)}\n" for key, value in mapping.items())


def update_env_file(path, updates):
    '''Set each KEY in an existing env file, appending keys it lacks. File mode is kept.'''
    path = Path(path)
    mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
    for key, value in updates.items():
        set_key(str(path), key, format_env_value(value), quote_mode='never')
    os.chmod(path, mode)
