#!/usr/bin/env python3
"""
pairshare CLI

Send a file to one peer, or receive one from it.

Usage:
    pairshare 192.168.1.20 notes.txt   # Send notes.txt, admitting only 192.168.1.20
    pairshare 192.168.1.10             # Receive from 192.168.1.10
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from .config import Config, load_config
from .errors import ConnectionRejected, TransferError
from .progress import null_progress_factory, terminal_progress_factory
from .transfer import FileReceiver, FileSender, display_name

console = Console()
logger = logging.getLogger('pairshare')


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    if verbose:
        level = 'DEBUG'
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def build_config(config_path: Optional[Path], port: Optional[int],
                 download_dir: Optional[Path], no_progress: bool) -> Config:
    """Loaded configuration with command-line overrides applied."""
    config = load_config(config_path)
    if port is not None:
        config.port = port
    if download_dir is not None:
        config.download_dir = download_dir
    if no_progress:
        config.show_progress = False
    return config


@click.command()
@click.argument('address')
@click.argument('file_path', required=False,
                type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON config file')
@click.option('--port', type=int, default=None, help='TCP port (default: 1234)')
@click.option('--download-dir', type=click.Path(file_okay=False, path_type=Path),
              default=None, help='Where received files are written')
@click.option('--no-progress', is_flag=True, help='Do not draw a progress bar')
def cli(address, file_path, verbose, config_path, port, download_dir, no_progress):
    """Send FILE_PATH to ADDRESS, or without FILE_PATH receive a file from ADDRESS."""
    config = build_config(config_path, port, download_dir, no_progress)
    setup_logging(verbose, config.log_level)

    if config.show_progress:
        progress_factory = terminal_progress_factory(
            console,
            min_interval=config.progress_interval,
            bar_length=config.progress_bar_length,
        )
    else:
        progress_factory = null_progress_factory

    if file_path is not None:
        worker = FileSender(config, address, file_path, progress_factory)
    else:
        worker = FileReceiver(config, address, progress_factory)

    try:
        session = asyncio.run(worker.run())
    except ConnectionRejected as e:
        logger.warning(str(e))
        return
    except TransferError as e:
        logger.error(f"Transfer failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)

    logger.info(
        f"{display_name(session.filename)}: {format_size(session.bytes_transferred)} in "
        f"{session.chunks_transferred} chunks, {session.elapsed_seconds:.1f}s"
    )
    logger.debug(f"Session: {session.to_dict()}")
    if file_path is None:
        console.print(f"[green]✓ Saved to: {display_name(str(session.path))}[/green]")


def main():
    cli()


if __name__ == '__main__':
    main()
