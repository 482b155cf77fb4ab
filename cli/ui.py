from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
import inquirer
import os

from config import TOOL_VERSION

console = Console()

# Lines of failed command output shown to the operator
FAILURE_TAIL_LINES = 20


def clear_screen():
    if console.is_terminal:
        os.system('cls' if os.name == 'nt' else 'clear')

def show_success(message):
    console.print(f"  ✅ {message}", style="bold green")

def show_warning(message):
    console.print(f"  ⚠️  {message}", style="yellow")

def show_info(message):
    console.print(f"  ℹ️  {message}", style="bold blue")

def print_header():
    '''Print the TREESCOUT banner'''
    logo = Text()
    logo.append("  _____ ____  _____ _____ ____   ____ ___  _   _ _____\n", style="bold green")
    logo.append(" |_   _|  _ \\| ____| ____/ ___| / ___/ _ \\| | | |_   _|\n", style="bold green")
    logo.append("   | | | |_) |  _| |  _| \\___ \\| |  | | | | | | | | |\n", style="green")
    logo.append("   | | |  _ <| |___| |___ ___) | |__| |_| | |_| | | |\n", style="green")
    logo.append("   |_| |_| \\_\\_____|_____|____/ \\____\\___/ \\___/  |_|\n\n", style="dim green")
    logo.append(f"  v{TOOL_VERSION}", style="bold white")
    logo.append("  |  Helpdesk Deployment", style="dim")
    console.print(Panel(logo, border_style="cyan", padding=(1, 2)))

def show_panel(title, content, style="cyan"):
    '''Menu screen: clear, banner, then content in a bordered panel'''
    clear_screen()
    print_header()
    console.print(Panel(content, title=title, border_style=style))


# Step tree used by deploy and update runs:
#
#   │
#   ├── ➜ Generating Dockerfile
#   │     detail
#   │
#   └── ✅ Deployment complete

STEP_ICONS = {"done": ("✅", "bold green"), "active": ("➜", "bold cyan"), "error": ("❌", "bold red")}


def show_step_line():
    console.print("  │", style="dim cyan")

def show_step(message, status="done"):
    '''Start a step. status: "done", "active", "error"'''
    icon, style = STEP_ICONS.get(status, ("•", "white"))
    show_step_line()
    console.print(f"  ├── {icon} {message}", style=style)

def show_step_detail(message):
    console.print(f"  │     {message}", style="dim green")

def show_step_final(message, success=True):
    show_step_line()
    icon, style = STEP_ICONS["done" if success else "error"]
    console.print(f"  └── {icon} {message}", style=style)

def show_result_panel(content, title="Success"):
    console.print()
    console.print(Panel(
        content,
        title=f"[bold green]{title}[/bold green]",
        border_style="green",
        padding=(1, 2)
    ))

def show_settings_table(rows, title=None):
    '''Two-column name/value table (settings summary, completion details)'''
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column()
    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)

def show_failure(error):
    '''Render a DeployError: message, hint, and the tail of the command output'''
    from utils.docker_progress import filter_docker_errors

    show_step_final(str(error), success=False)
    hint = getattr(error, 'hint', None)
    if hint:
        show_warning(hint)
    result = getattr(error, 'result', None)
    if result is not None and result.output:
        tail = filter_docker_errors(result.output, limit=FAILURE_TAIL_LINES)
        if tail:
            console.print(Panel(tail, title="Command output", border_style="red"), style="dim red")

def select_from_list(message, choices):
    '''Interactive inquirer list (menus)'''
    questions = [
        inquirer.List(
            'selection',
            message=message,
            choices=choices
        )
    ]

    answer = inquirer.prompt(questions)
    if answer is None:
        # Ctrl+C inside inquirer
        raise KeyboardInterrupt
    return answer['selection']
