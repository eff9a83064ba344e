"""
CLI command handlers and output formatting.
"""

import json
import signal
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .cluster import Cluster
from .config import Config, ExitCode
from .errors import (
    Cancelled,
    DeadlineExceeded,
    MalformedIdentifier,
    NotAuthorized,
    RemoteTaskFailed,
    TaskError,
    TransportError,
)
from .task import StatusSnapshot, Task

console = Console()
err_console = Console(stderr=True)


def exit_code_for(exc: Optional[BaseException]) -> ExitCode:
    if exc is None or isinstance(exc, Cancelled):
        return ExitCode.SUCCESS
    if isinstance(exc, MalformedIdentifier):
        return ExitCode.INVALID_INPUT
    if isinstance(exc, NotAuthorized):
        return ExitCode.PERMISSION_DENIED
    if isinstance(exc, DeadlineExceeded):
        return ExitCode.TIMEOUT
    if isinstance(exc, TransportError) and exc.status_code == 404:
        return ExitCode.NOT_FOUND
    if isinstance(exc, (RemoteTaskFailed, TransportError)):
        return ExitCode.SERVER_ERROR
    return ExitCode.GENERAL_ERROR


def _format_time(epoch: Optional[int]) -> str:
    if not epoch:
        return "-"
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _task_state(task: Task) -> str:
    if task.is_successful():
        return "[green]OK[/green]"
    if task.is_failed():
        return f"[red]{task.snapshot.exit_status}[/red]"
    if task.is_running():
        return "[yellow]running[/yellow]"
    return "[dim]unknown[/dim]"


def _task_dict(task: Task) -> Dict[str, Any]:
    snap: StatusSnapshot = task.snapshot
    return {
        'upid': str(task.upid),
        'node': task.upid.node,
        'type': task.upid.task_type,
        'id': task.upid.object_id,
        'user': task.upid.user,
        'starttime': task.upid.starttime,
        'endtime': task.endtime,
        'running': snap.running,
        'exitstatus': snap.exit_status or None,
        'successful': task.is_successful(),
        'log': snap.log_tail,
    }


class CLICommands:
    """Command handlers for the CLI interface."""

    def __init__(self, transport: Any, config: Config, output_format: str = 'table'):
        self.transport = transport
        self.config = config
        self.output_format = output_format

    def _output_result(self, data: Any, table_func=None):
        """Output data in the requested format."""
        if self.output_format == 'json':
            print(json.dumps(data, indent=2))
        else:
            if table_func:
                table_func(data)
            else:
                console.print(data)

    def _emit_result(self, success: bool, message: str, code: ExitCode = ExitCode.SUCCESS):
        if self.output_format == 'json':
            self._output_result({'success': success, 'message': message})
        else:
            if success:
                console.print(f"[green]✓ {message}[/green]")
            else:
                err_console.print(f"[red]✗ {message}[/red]")
        if code is not ExitCode.SUCCESS:
            sys.exit(code.value)

    def _emit_error(self, exc: TaskError):
        self._emit_result(False, str(exc), exit_code_for(exc))

    def _maybe_confirm(self, args, prompt_text: str):
        if hasattr(args, 'yes'):
            if not args.yes and not Confirm.ask(prompt_text):
                sys.exit(ExitCode.SUCCESS.value)

    def _task(self, args) -> Task:
        return Task(args.upid, self.transport)

    def _print_tasks(self, tasks: List[Task]):
        if not tasks:
            console.print("[yellow]No tasks found[/yellow]")
            return
        table = Table(title="Tasks")
        table.add_column("Node", style="green")
        table.add_column("Type", style="magenta")
        table.add_column("ID", style="cyan")
        table.add_column("User", style="blue")
        table.add_column("Started", no_wrap=True)
        table.add_column("Ended", no_wrap=True)
        table.add_column("Status")
        for task in sorted(tasks, key=lambda t: t.upid.starttime, reverse=True):
            table.add_row(
                task.upid.node,
                task.upid.task_type,
                task.upid.object_id or "-",
                task.upid.user,
                _format_time(task.upid.starttime),
                _format_time(task.endtime),
                _task_state(task),
            )
        console.print(table)

    def list_tasks(self, args):
        cluster = Cluster(self.transport)
        if args.node:
            filters: Dict[str, Any] = {'limit': args.limit}
            if args.errors:
                filters['errors'] = 1
            tasks = cluster.node_tasks(args.node, **filters)
        else:
            tasks = cluster.tasks()
            if args.errors:
                tasks = [t for t in tasks if t.is_failed()]
            tasks = tasks[:args.limit]
        if self.output_format == 'json':
            self._output_result([_task_dict(t) for t in tasks])
            return
        self._print_tasks(tasks)

    def _print_task(self, task: Task):
        console.print(f"\n[bold cyan]═══ Task {task.upid} ═══[/bold cyan]\n")
        console.print(f"  Node: {task.upid.node}")
        console.print(f"  Type: {task.upid.task_type}")
        if task.upid.object_id:
            console.print(f"  Object: {task.upid.object_id}")
        console.print(f"  User: {task.upid.user}")
        console.print(f"  Started: {_format_time(task.upid.starttime)}")
        if task.endtime:
            console.print(f"  Ended: {_format_time(task.endtime)} ({task.duration})")
        console.print(f"  Status: {_task_state(task)}")
        if task.snapshot.log_tail:
            console.print("\n[bold]Log:[/bold]")
            for line in task.snapshot.log_tail:
                console.print(f"  {line}", markup=False)

    def task_status(self, args):
        try:
            task = self._task(args)
            task.status()
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result(_task_dict(task))
            return
        self._print_task(task)

    def wait_task(self, args):
        cancel = threading.Event()
        previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
        try:
            task = self._task(args)
            timeout = self.config.task_timeout if args.timeout is None else args.timeout
            interval = args.interval or self.config.poll_interval
            if self.output_format != 'json':
                err_console.print(f"[dim]Waiting for {task.upid} (Ctrl-C to stop watching)[/dim]")
            task.wait(
                interval=interval,
                timeout=timeout,
                cancel=cancel,
                max_transient_errors=self.config.max_transient_errors,
            )
        except Cancelled as e:
            err_console.print(f"\n[yellow]Operation cancelled: {e}[/yellow]")
            sys.exit(ExitCode.SUCCESS.value)
        except TaskError as e:
            self._emit_error(e)
            return
        finally:
            signal.signal(signal.SIGINT, previous)
        self._emit_result(True, f"Task completed: {task.snapshot.exit_status}")

    def task_log(self, args):
        try:
            task = self._task(args)
            lines = task.log(start=args.start, limit=args.limit)
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result(lines)
            return
        for line in lines:
            console.print(line, markup=False)

    def stop_task(self, args):
        try:
            task = self._task(args)
        except MalformedIdentifier as e:
            self._emit_error(e)
            return
        self._maybe_confirm(args, f"Stop task {task.upid}?")
        try:
            task.stop()
        except TaskError as e:
            self._emit_error(e)
            return
        self._emit_result(True, f"Stop requested for {task.upid}")

    def cluster_overview(self, args):
        try:
            cluster = Cluster.connect(self.transport)
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result({
                'name': cluster.name,
                'version': cluster.version,
                'quorate': cluster.quorate,
                'nodes': cluster.nodes,
            })
            return
        if not cluster.entries:
            console.print("[yellow]Cluster status not visible with this token (needs Sys.Audit on /)[/yellow]")
            return
        console.print(f"[bold]Cluster:[/bold] {cluster.name or 'standalone'}")
        if cluster.version is not None:
            console.print(f"  Config version: {cluster.version}")
        console.print(f"  Quorate: {'Yes' if cluster.quorate else 'No'}")
        table = Table(title="Nodes")
        table.add_column("Name", style="green")
        table.add_column("ID", justify="right")
        table.add_column("IP")
        table.add_column("Online")
        for node in cluster.nodes:
            online = node.get('online')
            table.add_row(
                str(node.get('name', '-')),
                str(node.get('nodeid', '-')),
                str(node.get('ip', '-')),
                "[green]yes[/green]" if online else "[red]no[/red]",
            )
        console.print(table)

    def next_id(self, args):
        try:
            vmid = Cluster(self.transport).next_id()
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result({'nextid': vmid})
        else:
            console.print(vmid)

    def list_resources(self, args):
        try:
            resources = Cluster(self.transport).resources(*(args.type or []))
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result(resources)
            return
        if not resources:
            console.print("[yellow]No resources found[/yellow]")
            return
        table = Table(title="Cluster Resources")
        table.add_column("ID", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Node", style="green")
        table.add_column("Name")
        table.add_column("Status", style="yellow")
        for res in resources:
            table.add_row(
                str(res.get('id', '-')),
                str(res.get('type', '-')),
                str(res.get('node', '-')),
                str(res.get('name') or res.get('storage') or '-'),
                str(res.get('status', '-')),
            )
        console.print(table)

    def list_backups(self, args):
        try:
            schedules = Cluster(self.transport).get_backups()
        except TaskError as e:
            self._emit_error(e)
            return
        if self.output_format == 'json':
            self._output_result(schedules)
            return
        if not schedules:
            console.print("[yellow]No backup jobs configured[/yellow]")
            return
        table = Table(title="Backup Jobs")
        table.add_column("ID", style="cyan")
        table.add_column("Schedule")
        table.add_column("Storage", style="green")
        table.add_column("Guests")
        table.add_column("Enabled")
        for job in schedules:
            guests = 'all' if job.get('all') else str(job.get('vmid', '-'))
            enabled = job.get('enabled', 1)
            table.add_row(
                str(job.get('id', '-')),
                str(job.get('schedule', '-')),
                str(job.get('storage', '-')),
                guests,
                "[green]yes[/green]" if enabled else "[red]no[/red]",
            )
        console.print(table)
