# TREESCOUT v2.0
from datetime import datetime

from rich.table import Table

from cli.commands import run_deploy, run_update
from cli.ui import console, select_from_list, show_failure, show_info, show_panel, show_warning
from deploy.compose import ComposeProject
from deploy.repository import list_module_dirs, parse_module_entry
from utils.audit_logger import AuditLogger
from utils.errors import ConfigurationError, DeployError, OperatorAbort


def _pause():
    input("\nPress Enter to continue...")


def show_modules(config):
    '''Configured modules and whether they are checked out'''
    show_panel("Modules", f"{len(config.modules)} configured")

    installed = set(list_module_dirs(config.src_path))
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Module", style="cyan")
    table.add_column("Branch", style="white")
    table.add_column("Token", style="dim")
    table.add_column("Status", style="white")

    for entry in config.modules:
        try:
            module = parse_module_entry(entry)
        except ConfigurationError as e:
            table.add_row(str(entry), '', '', f"[red]{e}[/red]")
            continue
        status = "[green]installed[/green]" if module.name in installed else "[dim]not installed[/dim]"
        token = module.token_var
        if token and not config.token(token):
            token += " [yellow](unset)[/yellow]"
        table.add_row(module.name, module.branch or 'default', token, status)

    console.print(table)
    _pause()


def show_audit_events(config, limit=50):
    events = AuditLogger(config.install_path).get_recent_events(limit=limit)
    if not events:
        show_info("No deployment events recorded yet")
        _pause()
        return

    table = Table(title="Deployment Events", show_header=True, header_style="bold cyan")
    table.add_column("Time", style="cyan")
    table.add_column("User", style="magenta")
    table.add_column("Event", style="yellow")
    table.add_column("Details", style="dim")

    for event in events:
        try:
            time_str = datetime.fromisoformat(event['timestamp']).strftime("%Y-%m-%d %H:%M:%S")
        except (KeyError, ValueError):
            time_str = '?'
        details = event.get('details') or {}
        detail_str = ' | '.join(f"{k}: {v}" for k, v in details.items())
        table.add_row(time_str, event.get('user', 'unknown'), event.get('event_type', 'UNKNOWN'), detail_str)

    console.print(table)
    _pause()


def show_logs_menu(runtime):
    choice = select_from_list("Which logs?", [
        "📜 Application logs (follow)",
        "📝 Deployment audit log",
        "⬅️  Back",
    ])
    if "Application" in choice:
        compose = ComposeProject(runtime.executor, runtime.config.install_path, runtime.compose_command)
        if not compose.exists():
            show_warning("No docker-compose.yml found. Deploy first.")
            _pause()
            return
        show_info("Press Ctrl+C to stop following logs")
        try:
            compose.logs('app')
        except KeyboardInterrupt:
            pass
    elif "audit" in choice:
        show_audit_events(runtime.config)


def _run_guarded(action, runtime):
    '''Run a command from the menu; errors return to the menu'''
    try:
        action(runtime)
    except OperatorAbort as e:
        show_warning(str(e))
    except DeployError as e:
        show_failure(e)
    _pause()


def run_main_loop(runtime):
    '''Main application loop'''
    while True:
        show_panel(
            "Welcome to TREESCOUT!",
            f"FreeScout deployment | {runtime.config.install_dir} | {runtime.config.platform}",
        )

        choice = select_from_list("Main Menu", [
            "🚀 Deploy (fresh install / redeploy)",
            "🔄 Update existing installation",
            "📦 Manage modules",
            "📜 View logs",
            "❌ Exit",
        ])

        if "Deploy" in choice:
            _run_guarded(run_deploy, runtime)
        elif "Update" in choice:
            _run_guarded(run_update, runtime)
        elif "modules" in choice:
            show_modules(runtime.config)
        elif "logs" in choice:
            show_logs_menu(runtime)
        elif "Exit" in choice:
            print("\n👋 Goodbye!\n")
            break
