# TREESCOUT v2.0 - Input validation
import ipaddress
import re

from utils.errors import ConfigurationError


def validate_required(name, value):
    '''Raise ConfigurationError when a required setting is empty'''
    if value is None or not str(value).strip():
        raise ConfigurationError(f"Required setting '{name}' is not set")
    return str(value).strip()


def validate_install_path(path):
    '''Installation root must be an absolute path without traversal'''
    path = validate_required('install_dir', path)
    if '\x00' in path:
        raise ConfigurationError("Invalid characters in installation path")
    if not path.startswith('/'):
        raise ConfigurationError(f"Installation path must be absolute: {path}")
    if '..' in path.split('/'):
        raise ConfigurationError(f"Installation path must not contain '..': {path}")
    return path


def validate_domain(domain):
    '''Hostname used for APP_URL and the certificate CN'''
    domain = validate_required('domain_name', domain)
    if len(domain) > 253:
        raise ConfigurationError("Domain name too long (max 253 chars)")
    label = r'(?!-)[A-Za-z0-9-]{1,63}(?<!-)'
    if domain != 'localhost' and not re.match(rf'^{label}(\.{label})+$', domain):
        raise ConfigurationError(f"Invalid domain name: {domain}")
    return domain


def validate_subnet(subnet):
    '''Docker network subnet in CIDR form, e.g. 192.168.220.0/24'''
    subnet = validate_required('docker_subnet', subnet)
    if '/' not in subnet:
        raise ConfigurationError(f"Subnet must be in CIDR form: {subnet}")
    try:
        ipaddress.ip_network(subnet, strict=True)
    except ValueError as e:
        raise ConfigurationError(f"Invalid subnet '{subnet}': {e}")
    return subnet


def validate_module_name(name):
    '''Module directory name under src/Modules'''
    if not name or not isinstance(name, str):
        raise ConfigurationError("Module name is required")

    name = name.strip()

    if '..' in name or '/' in name or '\\' in name:
        raise ConfigurationError(f"Invalid characters in module name: {name}")

    if not re.match(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$', name):
        raise ConfigurationError(
            "Module name must start with alphanumeric and contain only letters, digits, _, ., -"
        )

    return name


def validate_branch(branch):
    '''Git branch name (loose check: no whitespace, no leading dash)'''
    branch = validate_required('branch', branch)
    if branch.startswith('-') or re.search(r'\s|\.\.|[~^:?*\[\\]', branch):
        raise ConfigurationError(f"Invalid branch name: {branch}")
    return branch
