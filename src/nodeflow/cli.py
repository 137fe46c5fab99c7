"""
nodeflow CLI
"""
import asyncio
import json

import click

from .config import EngineSettings, configure_logging
from .engine import FlowEngine
from .exceptions import FlowEngineError
from .loader import FlowLoader
from .store import InMemoryStore, JsonFileStore, SQLStore


def _parse_assignments(values):
    initial = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--set")
        try:
            initial[key] = json.loads(raw)
        except json.JSONDecodeError:
            initial[key] = raw
    return initial


def _open_store(kind, path, settings):
    if kind == "file":
        if not path:
            raise click.BadParameter("--store-path is required for the file store", param_hint="--store-path")
        return JsonFileStore(path)
    if kind == "sql":
        return SQLStore(path or settings.store_url)
    return InMemoryStore()


@click.group()
@click.pass_context
def cli(ctx):
    """Run and inspect nodeflow flow definitions"""
    settings = EngineSettings.from_env()
    configure_logging(settings)
    ctx.obj = settings


@cli.command()
@click.argument('flow_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def validate(settings, flow_file):
    """Check a flow definition without running it"""
    try:
        graph = FlowLoader(settings.max_steps).load(flow_file)
    except FlowEngineError as e:
        raise click.ClickException(str(e))
    click.echo(f"OK: {len(graph.nodes)} nodes, {len(graph.routes)} routes, start '{graph.start}'")


@cli.command()
@click.argument('flow_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--set', 'assignments', multiple=True, help='Initial store value as key=value (JSON values allowed)')
@click.option('--max-steps', type=click.IntRange(min=1), default=None, help='Override the step limit')
@click.option('--store', 'store_kind', type=click.Choice(['memory', 'file', 'sql']), default='memory',
              help='Shared store backend')
@click.option('--store-path', default=None, help='JSON file path or SQLAlchemy URL for the store')
@click.pass_obj
def run(settings, flow_file, assignments, max_steps, store_kind, store_path):
    """Run a flow definition and print the result as JSON"""
    initial = _parse_assignments(assignments)
    try:
        graph = FlowLoader(settings.max_steps).load(flow_file, max_steps=max_steps)
        store = _open_store(store_kind, store_path, settings)
    except FlowEngineError as e:
        raise click.ClickException(str(e))

    try:
        for key, value in initial.items():
            store.set(key, value)
        result = asyncio.run(FlowEngine().run(graph, store))
        output = {"result": result.to_dict(), "store": store.to_dict()}
    except FlowEngineError as e:
        raise click.ClickException(str(e))
    finally:
        if isinstance(store, SQLStore):
            store.close()
    click.echo(json.dumps(output, indent=2, ensure_ascii=False, default=str))


@cli.command()
@click.argument('flow_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def graph(settings, flow_file):
    """Print a flow definition as Graphviz DOT"""
    try:
        flow = FlowLoader(settings.max_steps).load(flow_file)
    except FlowEngineError as e:
        raise click.ClickException(str(e))
    click.echo(flow.to_dot())


def main():
    """Main entry point"""
    cli()


if __name__ == '__main__':
    main()
