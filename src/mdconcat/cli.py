"""
CLI entrypoint for md-concat.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from colorama import Fore, just_fix_windows_console

from . import __version__
from .collector import collect_files
from .core import (
    PREFIX,
    ConfigFileError,
    Diagnostics,
    InvalidRootError,
    OutputError,
    CompileError,
    echo,
    echo_error,
    write_markdown,
)
from .gitignore import IgnoreRegistry, IgnoreScope, compile_patterns


def _comma_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="md-concat",
        description=(
            "Recursively collect files with the given extensions and "
            "concatenate them into a single Markdown file."
        ),
    )
    p.add_argument("output_file", type=Path, help="The output Markdown file path")
    p.add_argument(
        "--input-dirs",
        type=_comma_list,
        action="extend",
        help="Comma-separated input directories (default: current directory)",
    )
    p.add_argument(
        "--extensions",
        type=_comma_list,
        action="extend",
        required=True,
        help='Comma-separated file extensions to include (e.g. "c,h,rs")',
    )
    p.add_argument(
        "--exclude-dirs",
        type=_comma_list,
        action="extend",
        default=[],
        help='Comma-separated directory names to skip (e.g. "target,build")',
    )
    p.add_argument(
        "--no-gitignore",
        dest="respect_gitignore",
        action="store_false",
        help="Do not honour .gitignore files",
    )
    p.add_argument(
        "--additional-gitignore",
        type=_comma_list,
        action="extend",
        default=[],
        help="Comma-separated extra gitignore files, anchored at their own directory",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Path to a file with extra ignore patterns applied everywhere",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def resolve_input_dirs(input_dirs: Sequence[str], verbose: bool = False) -> List[Path]:
    """Canonicalize the roots, dropping exact duplicates."""
    roots: List[Path] = []
    for raw in input_dirs:
        try:
            root = Path(raw).resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise InvalidRootError(f"Input directory '{raw}' is not accessible: {e}")
        if not root.is_dir():
            raise InvalidRootError(f"Input path '{raw}' is not a directory")
        if root in roots:
            echo(f"{PREFIX} Skipping duplicate directory: {raw} (same as {root})")
            continue
        roots.append(root)
        if verbose:
            echo(f"{PREFIX} Input directory: {raw}")
    return roots


def load_global_scope(config_path: Path) -> IgnoreScope:
    """Compile the ``--config`` patterns into a scope that applies everywhere."""
    if not config_path.exists():
        raise ConfigFileError(f"Config file '{config_path}' does not exist")
    if not config_path.is_file():
        raise ConfigFileError(f"'{config_path}' is not a file")
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            lines = fh.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read config file '{config_path}': {e}")
    try:
        return compile_patterns(None, lines, source=config_path)
    except CompileError as e:
        raise ConfigFileError(f"Invalid pattern in config file: {e}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    just_fix_windows_console()
    try:
        ns = _parse_args(argv)
        diagnostics = Diagnostics(sys.stderr)

        try:
            roots = resolve_input_dirs(ns.input_dirs or ["."], verbose=ns.verbose)
            global_scope = load_global_scope(ns.config.resolve()) if ns.config else None
        except (InvalidRootError, ConfigFileError) as e:
            echo_error(str(e), file=sys.stderr)
            sys.exit(1)

        extensions = {ext.lstrip(".") for ext in ns.extensions if ext.lstrip(".")}
        exclude_dirs = set(ns.exclude_dirs)
        if ns.verbose:
            echo(f"{PREFIX} Extensions: {', '.join(sorted(extensions))}")
            if exclude_dirs:
                echo(f"{PREFIX} Excluding directories: {', '.join(sorted(exclude_dirs))}")
            if global_scope is not None:
                echo(f"{PREFIX} Loaded extra patterns from {ns.config}")

        if ns.respect_gitignore:
            registry = IgnoreRegistry.discover_and_load(
                roots,
                [Path(f) for f in ns.additional_gitignore],
                global_scope=global_scope,
                diagnostics=diagnostics,
            )
            if ns.verbose:
                echo(f"{PREFIX} Gitignore support enabled ({len(registry)} files)")
        else:
            registry = IgnoreRegistry(global_scope=global_scope)
            if ns.verbose:
                echo(f"{PREFIX} Gitignore support disabled")

        files = collect_files(
            roots,
            extensions,
            exclude_dirs,
            registry=registry,
            # the --config patterns still apply without .gitignore support
            respect_gitignore=ns.respect_gitignore or global_scope is not None,
            diagnostics=diagnostics,
        )
        if ns.verbose:
            echo(f"{PREFIX} Concatenating {len(files)} files …")

        try:
            summary = write_markdown(files, ns.output_file, diagnostics=diagnostics)
        except OutputError as e:
            echo_error(str(e), file=sys.stderr)
            sys.exit(1)

        echo(
            f"{PREFIX} Successfully concatenated {summary.files_written} files "
            f"into {ns.output_file}",
            Fore.GREEN,
        )
        if diagnostics.events:
            echo(f"{PREFIX} {len(diagnostics.events)} warning(s) reported", Fore.YELLOW)
        echo("\n" + summary.counter.report())

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        echo_error(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
