#!/usr/bin/env python3
"""
proxmox-tasks entrypoint: argument parsing and command dispatch.
"""

import argparse
import os
import sys
import traceback

from rich.console import Console

from .commands import CLICommands, exit_code_for
from .config import Config, ConfigError, ExitCode
from .errors import TaskError
from .transport import ProxmoxTransport

err_console = Console(stderr=True)


def create_parser():
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        description='Track asynchronous Proxmox VE tasks',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument('--profile', default='default', help='Configuration profile to use')
    parser.add_argument('--output', choices=['table', 'json'], default='table', help='Output format')
    parser.add_argument('--insecure', action='store_true', help='Disable SSL certificate verification (use with caution)')
    parser.add_argument('--debug', action='store_true', help='Enable debug output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    tasks_parser = subparsers.add_parser('tasks', help='List recent tasks')
    tasks_parser.add_argument('--node', help='Show the task history of one node instead of the cluster')
    tasks_parser.add_argument('--errors', action='store_true', help='Only show failed tasks')
    tasks_parser.add_argument('--limit', type=int, default=50, help='Maximum number of tasks')

    status_parser = subparsers.add_parser('status', help='Show the current status of a task')
    status_parser.add_argument('upid', help='Task UPID')

    wait_parser = subparsers.add_parser('wait', help='Wait for a task to finish')
    wait_parser.add_argument('upid', help='Task UPID')
    wait_parser.add_argument('--timeout', type=float, help='Give up after this many seconds (0 = never)')
    wait_parser.add_argument('--interval', type=float, help='Seconds between status polls')

    log_parser = subparsers.add_parser('log', help='Show the log of a task')
    log_parser.add_argument('upid', help='Task UPID')
    log_parser.add_argument('--start', type=int, default=0, help='First line to show')
    log_parser.add_argument('--limit', type=int, default=50, help='Number of lines to show')

    stop_parser = subparsers.add_parser('stop', help='Stop a running task on its node')
    stop_parser.add_argument('upid', help='Task UPID')
    stop_parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation')

    subparsers.add_parser('cluster', help='Show cluster status (name, quorum, nodes)')
    subparsers.add_parser('nextid', help='Print the next free guest ID')

    resources_parser = subparsers.add_parser('resources', help='List cluster resources')
    resources_parser.add_argument('--type', nargs='*', help='Resource type filter (vm, storage, node, sdn)')

    subparsers.add_parser('backups', help='List scheduled backup jobs')

    return parser


def main(argv=None):
    """Main entry point for the CLI application."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(ExitCode.SUCCESS.value)

    # Handle --insecure flag
    if args.insecure:
        os.environ['PROXMOX_VERIFY_SSL'] = 'false'
    if args.debug:
        os.environ['PROXMOX_DEBUG'] = '1'

    try:
        config = Config.from_env(args.profile)
    except ConfigError as e:
        err_console.print(
            f"[red]Error: {e}[/red]\n"
            f"[dim]Example config file ({Config.get_config_path(args.profile)}):[/dim]\n"
            f"[dim][proxmox][/dim]\n"
            f"[dim]host = your.proxmox.server[/dim]\n"
            f"[dim]token_name = your-token-name[/dim]\n"
            f"[dim]token_value = your-token-secret[/dim]\n"
        )
        sys.exit(ExitCode.INVALID_INPUT.value)

    try:
        transport = ProxmoxTransport.from_config(config, debug=args.debug)
    except TaskError as e:
        err_console.print(f"[red]Failed to connect to Proxmox: {e}[/red]")
        sys.exit(exit_code_for(e).value)

    if args.debug and transport.version:
        err_console.print(
            f"[dim]Connected to Proxmox {transport.version.get('version')} "
            f"at {config.host}:{config.port}[/dim]"
        )

    commands = CLICommands(transport, config, output_format=args.output)
    command_map = {
        'tasks': commands.list_tasks,
        'status': commands.task_status,
        'wait': commands.wait_task,
        'log': commands.task_log,
        'stop': commands.stop_task,
        'cluster': commands.cluster_overview,
        'nextid': commands.next_id,
        'resources': commands.list_resources,
        'backups': commands.list_backups,
    }

    handler = command_map.get(args.command)
    if handler:
        try:
            handler(args)
        except KeyboardInterrupt:
            err_console.print("\n[yellow]Operation cancelled[/yellow]")
            sys.exit(ExitCode.SUCCESS.value)
        except TaskError as e:
            err_console.print(f"[red]Error: {e}[/red]")
            sys.exit(exit_code_for(e).value)
        except Exception as e:
            if args.debug:
                err_console.print("[red]Debug trace:[/red]")
                traceback.print_exc()
            err_console.print(f"[red]Error: {e}[/red]")
            sys.exit(ExitCode.GENERAL_ERROR.value)
    else:
        err_console.print(f"[red]Unknown command: {args.command}[/red]")
        parser.print_help()
        sys.exit(ExitCode.INVALID_INPUT.value)


if __name__ == "__main__":
    main()
