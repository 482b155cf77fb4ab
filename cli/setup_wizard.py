# TREESCOUT v2.0
from rich.table import Table

from cli.ui import console, show_info, show_step, show_step_line, show_success, show_warning
from config.settings import save_deploy_config
from deploy.reconcile import inspect_installation
from utils.audit_logger import AuditEventType, AuditLogger
from utils.errors import ConfigurationError, OperatorAbort
from utils.validation import validate_branch, validate_domain, validate_subnet


def _ask(prompt, label, default=''):
    hint = f" [{default}]" if default else ''
    answer = prompt.ask(f"{label}{hint}: ").strip()
    return answer or default


def _ask_valid(prompt, label, default, validator):
    '''Re-ask until validator accepts the answer'''
    while True:
        value = _ask(prompt, label, default)
        try:
            return validator(value)
        except ConfigurationError as e:
            prompt.note(str(e))


def _mask(value):
    if not value:
        return '[dim]not set[/dim]'
    return value[:4] + '…' if len(value) > 8 else '****'


def show_summary(config):
    table = Table(title="Deployment Settings", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="cyan", width=22)
    table.add_column("Value", style="white")

    table.add_row("Repository", config.repo_url)
    table.add_row("Branch", config.branch)
    table.add_row("Install directory", config.install_dir)
    table.add_row("Platform", config.platform)
    table.add_row("Domain", config.domain_name or '[dim]not set[/dim]')
    if config.platform == 'orbstack':
        table.add_row("Tunnel token", _mask(config.tunnel_token))
    else:
        table.add_row("Docker subnet", config.docker_subnet or '[dim]not set[/dim]')
    table.add_row("Admin email", config.admin_email or '[dim]generated[/dim]')
    table.add_row("Google OAuth", "enabled" if config.google_client_id else "disabled")
    table.add_row("Sample data", "yes" if config.seed_sample_data else "no")
    table.add_row("Modules", str(len(config.modules)))

    console.print()
    console.print(table)
    console.print()


def collect_settings(config, prompt):
    '''Ask for every setting, offering current values as defaults'''
    show_step("Application source", "active")
    config.repo_url = _ask(prompt, "Repository URL", config.repo_url)
    config.branch = _ask_valid(prompt, "Branch", config.branch, validate_branch)

    show_step("Network", "active")
    config.domain_name = _ask_valid(prompt, "Domain name", config.domain_name, validate_domain)
    if config.platform == 'orbstack':
        while not config.tunnel_token:
            config.tunnel_token = _ask(prompt, "Cloudflare tunnel token", config.tunnel_token)
    else:
        config.docker_subnet = _ask_valid(
            prompt, "Docker subnet", config.docker_subnet or '192.168.220.0/24', validate_subnet
        )

    show_step("Access tokens", "active")
    token = _ask(prompt, "Repository token for private modules (REPO_TOKEN)",
                 config.tokens.get('REPO_TOKEN', ''))
    if token:
        config.tokens['REPO_TOKEN'] = token

    if prompt.confirm("Configure Google OAuth?", default=bool(config.google_client_id)):
        config.google_client_id = _ask(prompt, "Google client ID", config.google_client_id)
        config.google_client_secret = _ask(prompt, "Google client secret", config.google_client_secret)
        config.google_admin_emails = _ask(prompt, "Google admin emails (comma separated)",
                                          config.google_admin_emails)
        config.google_allowed_domains = _ask(prompt, "Allowed Google domains (comma separated)",
                                             config.google_allowed_domains)

    show_step("Administrator", "active")
    config.admin_email = _ask(prompt, "Admin email (blank to generate)", config.admin_email)
    config.admin_password = _ask(prompt, "Admin password (blank to generate)", config.admin_password)

    if inspect_installation(config.install_path).marker_present:
        show_warning("An existing installation was found. Sample data would be added to live data.")
    config.seed_sample_data = prompt.confirm("Seed sample data?", default=config.seed_sample_data)
    return config


def run_setup_wizard(config, prompt, config_path, saved=False):
    '''
    Interactive setup. With saved settings the operator may keep them as is.
    Writes the result to config_path and asks before starting.
    '''
    show_step_line()
    if saved:
        show_summary(config)
        keep = prompt.confirm("Use these saved settings?", default=True)
    else:
        show_info("No saved configuration found. Let's set one up.")
        keep = False

    if not keep:
        collect_settings(config, prompt)
        save_deploy_config(config, config_path)
        AuditLogger(config.install_path).log_event(
            AuditEventType.CONFIG_CHANGE, {'config': str(config_path)}
        )
        show_success(f"Settings saved to {config_path}")
        show_summary(config)

    if not prompt.confirm("Start deployment?", default=True):
        raise OperatorAbort("Deployment cancelled.", exit_code=0)
    return config
