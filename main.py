# TREESCOUT v2.0
import argparse
import logging
import os
import sys

from rich.logging import RichHandler

from cli.ui import console, print_header, show_failure, show_warning
from config import DEFAULT_CONFIG_FILE, PLATFORMS
from utils.errors import DeployError, OperatorAbort


def check_sudo():
    '''Re-run with sudo on Linux when not root'''
    import platform
    import shutil

    if platform.system().lower() != 'linux':
        return
    if os.geteuid() == 0:
        return
    if shutil.which('sudo') is None:
        return

    print("⚠️  TREESCOUT needs root privileges for Docker on Linux")
    print("   Restarting with sudo...")
    os.execvp('sudo', ['sudo', '-E', sys.executable, os.path.abspath(__file__)] + sys.argv[1:])


def build_parser():
    parser = argparse.ArgumentParser(
        prog='treescout',
        description="Deploy and update a containerized FreeScout helpdesk.",
    )
    parser.add_argument('command', nargs='?',
                        help="deploy, update, or a repository URL to deploy")
    parser.add_argument('branch', nargs='?', help="branch to deploy (with a repository URL)")
    parser.add_argument('--config', default=str(DEFAULT_CONFIG_FILE),
                        help="settings file (default: deploy.yml beside this tool)")
    parser.add_argument('--install-dir', help="installation directory")
    parser.add_argument('--platform', choices=PLATFORMS, help="target platform")
    parser.add_argument('--non-interactive', action='store_true',
                        help="never prompt; existing installations are reused")
    decision = parser.add_mutually_exclusive_group()
    decision.add_argument('--reuse', action='store_true',
                          help="reuse an existing installation's data")
    decision.add_argument('--destroy', action='store_true',
                          help="destroy an existing installation's data (still asks for the typed confirmation)")
    parser.add_argument('-v', '--verbose', action='store_true', help="debug logging")
    return parser


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=verbose)],
    )


def resolve_config(args):
    '''Saved settings, then command-line overrides. Returns (config, saved).'''
    from config.settings import DeployConfig, load_deploy_config

    config = load_deploy_config(args.config)
    saved = config is not None
    if config is None:
        config = DeployConfig()

    if args.command and args.command not in ('deploy', 'update'):
        config.repo_url = args.command
        if args.branch:
            config.branch = args.branch
    if args.install_dir:
        config.install_dir = args.install_dir
    if args.platform:
        config.platform = args.platform
    return config, saved


def preset_decision(args):
    from deploy.reconcile import ReconciliationDecision

    if args.destroy:
        return ReconciliationDecision.DESTROY_AND_REINSTALL
    if args.reuse:
        return ReconciliationDecision.REUSE_EXISTING
    return None


def run(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    from cli.commands import Runtime, detect_interactive, run_deploy, run_update
    from utils.validation import validate_install_path

    config, saved = resolve_config(args)
    validate_install_path(config.install_dir)
    config.interactive = detect_interactive(args.non_interactive)

    runtime = Runtime(config, args.config, saved=saved, preset=preset_decision(args))

    if args.command == 'update':
        run_update(runtime)
    elif args.command or not config.interactive:
        run_deploy(runtime)
    else:
        from cli.main_menu import run_main_loop
        run_main_loop(runtime)
    return 0


def main(argv=None):
    try:
        return run(argv)
    except OperatorAbort as e:
        show_warning(str(e))
        return e.exit_code
    except DeployError as e:
        show_failure(e)
        return e.exit_code
    except KeyboardInterrupt:
        console.print("\n\n👋 Interrupted.\n")
        return 130


def cli():
    '''Console-script entry point'''
    check_sudo()
    print_header()
    sys.exit(main())


if __name__ == "__main__":
    cli()
