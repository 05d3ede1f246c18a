"""bluelink command line: resolve, complete and inspect chat files."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.tree import Tree

from bluelink.config import BlueLinkSettings
from bluelink.config import SettingsPaths
from bluelink.exceptions import BlueLinkError
from bluelink.links import LinkSyntax
from bluelink.runner import ChatRunner
from bluelink.tree import ResolutionContext
from bluelink.tree import ResolutionNode
from bluelink.tree import ResolutionTree

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

ROLES = ["system", "developer", "user", "assistant", "tool"]

_STATUS_STYLES = {
    "idle": "dim",
    "resolving": "yellow",
    "complete": "green",
    "cached": "cyan",
    "error": "red",
    "cycle-detected": "magenta",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=verbose, show_path=False)],
        force=True,
    )


def _build_runner(file: Path, vault: Path | None, inline: bool) -> ChatRunner:
    vault = (vault or file.parent).resolve()
    settings = BlueLinkSettings(SettingsPaths.default(vault))
    resolution = settings.resolution_config()
    if inline:
        resolution = resolution.model_copy(update={"link_syntax": LinkSyntax.INLINE})
    return ChatRunner.from_settings(vault, settings, resolution=resolution)


def _fail(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def render_tree(tree: ResolutionTree) -> Tree:
    """Rich tree of every file visited during a resolution."""

    def label(node: ResolutionNode) -> str:
        status = tree.status(node)
        text = f"[{_STATUS_STYLES.get(status, 'white')}]{node.file_path}[/] [dim]({status})[/dim]"
        if error := tree.error(node):
            text += f" [red]{error}[/red]"
        return text

    def add(branch: Tree, node: ResolutionNode) -> None:
        for child in tree.children(node):
            add(branch.add(label(child)), child)

    root = Tree(f"[bold]{tree.root.file_path}[/bold]")
    add(root, tree.root)
    return root


async def _run_resolve(runner: ChatRunner, file: Path, role: str | None) -> tuple[list[dict], ResolutionContext]:
    handle = runner.store.handle_for(file)
    context = runner.create_context(handle)
    try:
        if role is not None:
            messages = await runner.resolve_text(handle, role, context)
        else:
            messages = await runner.resolve_file(handle, context)
    finally:
        await runner.aclose()
    return [message.to_request_dict() for message in messages], context


async def _run_complete(runner: ChatRunner, file: Path) -> str:
    handle = runner.store.handle_for(file)
    try:
        result = await runner.complete_file(handle)
    finally:
        await runner.aclose()
    return result.newest_reply


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """bluelink - resolve [[links]] in markdown chats and run them."""
    _configure_logging(verbose)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--role", type=click.Choice(ROLES), default=None, help="Resolve the whole file as one message of this role")
@click.option("--vault", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None, help="Vault root (default: the file's folder)")
@click.option("--inline", is_flag=True, help="Resolve links anywhere in a line, not just whole-line links")
def resolve(file: Path, role: str | None, vault: Path | None, inline: bool) -> None:
    """Print the resolved request messages of FILE as JSON."""
    try:
        runner = _build_runner(file, vault, inline)
        messages, _ = asyncio.run(_run_resolve(runner, file, role))
    except (BlueLinkError, OSError, ValueError) as e:
        _fail(str(e))
        return
    click.echo(json.dumps(messages, indent=2, ensure_ascii=False))


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--vault", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None, help="Vault root (default: the file's folder)")
@click.option("--inline", is_flag=True, help="Resolve links anywhere in a line, not just whole-line links")
def complete(file: Path, vault: Path | None, inline: bool) -> None:
    """Execute the chat in FILE and append the reply to it."""
    try:
        runner = _build_runner(file, vault, inline)
        reply = asyncio.run(_run_complete(runner, file))
    except (BlueLinkError, OSError, ValueError) as e:
        _fail(str(e))
        return
    console.print(reply, markup=False)
    console.print(f"[green]✓[/green] Reply written to {file}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--role", type=click.Choice(ROLES), default=None, help="Resolve the whole file as one message of this role")
@click.option("--vault", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None, help="Vault root (default: the file's folder)")
@click.option("--inline", is_flag=True, help="Resolve links anywhere in a line, not just whole-line links")
def tree(file: Path, role: str | None, vault: Path | None, inline: bool) -> None:
    """Resolve FILE and show which files were visited."""
    try:
        runner = _build_runner(file, vault, inline)
        _, context = asyncio.run(_run_resolve(runner, file, role))
    except (BlueLinkError, OSError, ValueError) as e:
        _fail(str(e))
        return
    console.print(render_tree(context.tree))


if __name__ == "__main__":
    main()
