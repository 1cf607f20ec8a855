import click
import logging
import time
import traceback
from pathlib import Path
from typing import List, Tuple

from . import __version__, constants
from .config import Config
from .builder import AssemblyManager
from .builder.assembly import assembly_directory
from .builder.layout import compute_dirs
from .io import create_fs
from .utils import setup_logger, parse_module_levels
from .exceptions import (
    CtxBuilderError,
    ConfigurationError,
    AssemblyResolutionError,
    ArchiveError,
    FilesystemError,
)


def complete_config_files(ctx, param, incomplete):
    """Auto-complete .yml and .yaml config files in current directory"""
    try:
        cwd = Path.cwd()
        yml_files = list(cwd.glob('*.yml')) + list(cwd.glob('*.yaml'))
        return sorted(f.name for f in yml_files if f.name.startswith(incomplete))
    except OSError as e:
        logging.debug(f"Config file auto-completion failed: {e}")
        return []


def setup_logging(debug: bool, log_levels: str = None, log_file: str = None):
    """Setup logger with debug and module-level configuration"""
    setup_logger(debug=debug, module_levels=parse_module_levels(log_levels), log_file=log_file)


def _fail(message: str):
    logging.error(message)
    ctx = click.get_current_context()
    if ctx.obj.get('debug'):
        traceback.print_exc()
    raise click.Abort()


def handle_errors(func):
    """Decorator to handle common exceptions"""
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConfigurationError as e:
            _fail(f"Configuration error: {e}")
        except AssemblyResolutionError as e:
            _fail(f"Assembly error: {e}")
        except ArchiveError as e:
            _fail(f"Archive error: {e}")
        except FilesystemError as e:
            _fail(f"Filesystem error: {e}")
        except CtxBuilderError as e:
            _fail(f"An unexpected application error occurred: {e}")
    return wrapper


def _load(config_file: str, vfs: bool) -> Tuple[Config, AssemblyManager]:
    fs = create_fs(use_vfs=vfs)
    config = Config(Path(config_file).absolute(), fs)
    return config, AssemblyManager(fs)


@handle_errors
def do_build(config_file: str, images: List[str], vfs: bool):
    """Execute build command"""
    config, manager = _load(config_file, vfs)
    selected = [config.image(name) for name in images] if images else config.images
    if not selected:
        logging.warning(f"No images configured in {config_file}")
    for image in selected:
        archive = manager.create_context_archive(image.name, config.project, image.build)
        click.echo(f"{image.name}: {archive}")


@handle_errors
def do_files(config_file: str, image_name: str):
    """Execute files command"""
    config, manager = _load(config_file, False)
    image = config.image(image_name)
    tracked = manager.get_assembly_files(image.name, image.build, config.project)
    for entry in tracked:
        click.echo(f"{entry.src_file} -> {entry.dest_file}")


@handle_errors
def do_patch(config_file: str, image_name: str, files: List[str]):
    """Execute patch command"""
    config, manager = _load(config_file, False)
    image = config.image(image_name)
    tracked = manager.get_assembly_files(image.name, image.build, config.project)
    entries = tracked.entries_for_sources([Path(f) for f in files])
    if not entries:
        logging.warning(f"None of {list(files)} is part of the assembly of '{image.name}'")
        return
    target = assembly_directory(compute_dirs(image.name, config.project))
    archive = manager.create_changed_files_archive(entries, target, image.name, config.project)
    click.echo(str(archive))


def _last_shipped(fs, tmp_dir: Path):
    """mtime of the newest context or changed-files archive in `tmp_dir`, None if there is none"""
    if not fs.is_dir(tmp_dir):
        return None
    stamps = [
        fs.stat(tmp_dir / name).st_mtime
        for name in fs.find(tmp_dir)
        if name == constants.CHANGED_FILES_ARCHIVE or name.startswith(f"{constants.DOCKER_BUILD_ARCHIVE}.")
    ]
    return max(stamps, default=None)


@handle_errors
def do_watch(config_file: str, image_name: str, interval: float, once: bool):
    """Execute watch command"""
    config, manager = _load(config_file, False)
    image = config.image(image_name)
    tracked = manager.get_assembly_files(image.name, image.build, config.project)
    dirs = compute_dirs(image.name, config.project)
    target = assembly_directory(dirs)
    if once:
        # the tracking pass just stored current metadata, compare with what was last shipped
        baseline = _last_shipped(manager.fs, dirs.temporary_root_directory)
        logging.info(f"Checking {len(tracked)} files of '{image.name}' against the last archive")
    else:
        logging.info(f"Watching {len(tracked)} files of '{image.name}' every {interval}s")

    while True:
        if once:
            changed = tracked.entries_changed_since(manager.fs, baseline)
        else:
            time.sleep(interval)
            changed = tracked.updated_entries_and_refresh(manager.fs)
        present = [e for e in changed if manager.fs.is_file(e.src_file)]
        for gone in (e for e in changed if e not in present):
            logging.warning(f"{gone.src_file} was removed, skipping")
        if present:
            archive = manager.create_changed_files_archive(present, target, image.name, config.project)
            click.echo(str(archive))
        if once:
            return


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('-l', '--log-levels', help="Comma-separated per-module log levels (e.g., 'track=DEBUG,io=INFO')")
@click.option('-f', '--log-file', help='Path to log file')
@click.version_option(version=__version__, prog_name='ctxbuilder')
@click.pass_context
def cli(ctx, debug, log_levels, log_file):
    """Context Builder - Assemble container build contexts

    \b
    Examples:
      ctxb build config.yml               Build contexts of all images
      ctxb files config.yml -i app        Show the tracked assembly files
      ctxb patch config.yml -i app a.py   Pack changed files into an archive
      ctxb watch config.yml -i app        Pack changed files whenever they change
    """
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    setup_logging(debug, log_levels, log_file)


@cli.command()
@click.argument('config_file', shell_complete=complete_config_files)
@click.option('-i', '--image', 'images', multiple=True, help='Image to build (repeatable, default: all)')
@click.option('--vfs', is_flag=True, help='Work on an in-memory file system')
def build(config_file, images, vfs):
    """Build the context archive of images"""
    do_build(config_file, list(images), vfs)


@cli.command()
@click.argument('config_file', shell_complete=complete_config_files)
@click.option('-i', '--image', 'image_name', required=True, help='Image to track')
def files(config_file, image_name):
    """Print the source -> destination mapping of an image's assembly"""
    do_files(config_file, image_name)


@cli.command()
@click.argument('config_file', shell_complete=complete_config_files)
@click.option('-i', '--image', 'image_name', required=True, help='Image to patch')
@click.argument('changed', nargs=-1, required=True, type=click.Path())
def patch(config_file, image_name, changed):
    """Pack the given changed source files into changed-files.tar"""
    do_patch(config_file, image_name, list(changed))


@cli.command()
@click.argument('config_file', shell_complete=complete_config_files)
@click.option('-i', '--image', 'image_name', required=True, help='Image to watch')
@click.option('--interval', default=1.0, show_default=True, type=float, help='Polling interval in seconds')
@click.option('--once', is_flag=True, help='Check once and exit')
def watch(config_file, image_name, interval, once):
    """Poll the assembly sources and pack changes as they happen"""
    try:
        do_watch(config_file, image_name, interval, once)
    except KeyboardInterrupt:
        logging.info("Stopped watching")


if __name__ == '__main__':
    cli()
