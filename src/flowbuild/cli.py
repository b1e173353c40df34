from __future__ import annotations

import asyncio
import importlib
import pkgutil
from pathlib import Path

import typer

from .config import load_config
from .core import SequenceSpec, TaskRegistry, TaskSpec
from .errors import ConfigurationError, TaskFailedError
from .logging import get_logger
from .scheduler import BuildContext, Scheduler
from .server import DevServer, ReloadHub, create_app
from .tools import Toolbox
from .utils import dev_url, project_name, public_dir, section
from .watch import WatchBinding, WatchSession


app = typer.Typer(add_completion=False, help="Site asset build orchestrator")
log = get_logger("flowbuild.cli")

TASKS_PACKAGE = "flowbuild.tasks"


def discover_tasks(registry: TaskRegistry, package: str = TASKS_PACKAGE) -> TaskRegistry:
    """Import all modules in the tasks package and register what they declare."""
    try:
        pkg = importlib.import_module(package)
    except ModuleNotFoundError:
        log.warning("No tasks package found: %s", package)
        return registry
    seen: set[int] = set()
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{package}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = obj if isinstance(obj, SequenceSpec) else getattr(obj, "_task_spec", None)
            # Re-exported declarations are registered once
            if spec is None or id(spec) in seen:
                continue
            if isinstance(spec, SequenceSpec):
                registry.add_sequence(spec)
            elif isinstance(spec, TaskSpec):
                registry.add(spec)
            else:
                continue
            seen.add(id(spec))
    return registry


def bootstrap(config: str, live: bool = False) -> Scheduler:
    params = load_config(config)
    log_file = section(params, "project").get("log_file")
    if log_file:
        get_logger("flowbuild", log_file=Path(log_file))
    registry = discover_tasks(TaskRegistry())
    registry.validate()
    context = BuildContext(params=params, tools=Toolbox.from_params(params), live=live)
    return Scheduler(registry, context, name=project_name(params))


def _fail(message: str, code: int) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=code)


@app.command("list")
def list_tasks(
    config: str = typer.Option("configs/base.yaml", help="Path to YAML config"),
):
    """List discovered tasks and targets."""
    try:
        registry = bootstrap(config).registry
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)
    if not len(registry):
        typer.echo("No tasks discovered.")
        raise typer.Exit(code=0)
    typer.echo("Discovered tasks:")
    for name in registry.names():
        spec = registry.resolve(name)
        typer.echo(f"- {name}" + (f"  {spec.description}" if spec.description else ""))


@app.command()
def plan(
    target: str = typer.Argument("default", help="Task or target name"),
    config: str = typer.Option("configs/base.yaml", help="Path to YAML config"),
):
    """Print the batches a target would run, without running them."""
    try:
        execution = bootstrap(config).plan(target)
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)
    for i, batch in enumerate(execution.batches, start=1):
        typer.echo(f"{i}. " + ", ".join(batch))


@app.command()
def run(
    target: str = typer.Argument("default", help="Task or target name to run"),
    config: str = typer.Option("configs/base.yaml", help="Path to YAML config"),
):
    """Run a task or target and everything it depends on."""
    try:
        scheduler = bootstrap(config)
        report = asyncio.run(scheduler.run(target))
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)
    except TaskFailedError as e:
        _fail(f"{e.task}: {e.error}", 1)
    typer.echo(f"Finished '{target}' ({len(report.plan)} tasks)")


@app.command()
def serve(
    config: str = typer.Option("configs/base.yaml", help="Path to YAML config"),
):
    """Serve the site, rebuild on change and reload connected browsers."""
    try:
        scheduler = bootstrap(config, live=True)
        params = scheduler.context.params
        bindings = WatchBinding.from_params(params.get("watch", []))
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)
    server_cfg = section(params, "server")
    hub = ReloadHub()
    flask_app = create_app(
        hub,
        public_dir(params),
        proxy_url=dev_url(params) if server_cfg.get("proxy") else None,
    )
    server = DevServer(
        flask_app,
        host=server_cfg.get("host", "127.0.0.1"),
        port=int(server_cfg.get("port", 3000)),
        prefix=server_cfg.get("log_prefix", "Flow"),
    )
    session = WatchSession(
        scheduler,
        bindings,
        hub,
        interval=float(server_cfg.get("interval", 0.5)),
        debounce=float(server_cfg.get("debounce", 0.2)),
    )
    server.start()
    try:
        asyncio.run(session.run())
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)
    except KeyboardInterrupt:
        log.info("Stopping")
    finally:
        server.stop()


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
