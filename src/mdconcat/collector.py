"""
File collection: walk the input roots and pick the files to concatenate.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, NamedTuple, Optional, Set

from .core import Diagnostics
from .gitignore import IgnoreRegistry, PathLike


class CandidateFile(NamedTuple):
    path: Path
    relative_path: Path
    is_dir: bool


class CollectedFile(NamedTuple):
    relative_path: Path
    absolute_path: Path


def _extension(name: str) -> str:
    return Path(name).suffix[1:]


def _is_ignored(candidate: CandidateFile, registry: IgnoreRegistry) -> bool:
    return registry.should_ignore(
        candidate.path, candidate.relative_path, is_dir=candidate.is_dir
    )


def _walk(
    root: Path,
    exclude_dirs: Set[str],
    registry: IgnoreRegistry,
    respect_gitignore: bool,
    diagnostics: Diagnostics,
) -> Iterator[CandidateFile]:
    """Yield the regular files under *root*, pruning directories on the way.

    Symbolic links are never followed, neither to directories nor to files.
    """

    def _on_error(err: OSError) -> None:
        diagnostics.warn(
            Diagnostics.TRAVERSAL,
            Path(err.filename) if err.filename else None,
            f"Failed to access entry: {err}",
        )

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)

        kept = []
        for name in sorted(dirnames):
            if name in exclude_dirs:
                continue
            child = current / name
            candidate = CandidateFile(child, child.relative_to(root), is_dir=True)
            if respect_gitignore and _is_ignored(candidate, registry):
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            path = current / name
            if path.is_symlink() or not path.is_file():
                continue
            try:
                rel = path.relative_to(root)
            except ValueError:
                diagnostics.warn(
                    Diagnostics.RELATIVE_PATH,
                    path,
                    f"Could not get relative path for {path}",
                )
                continue
            yield CandidateFile(path=path, relative_path=rel, is_dir=False)


def collect_files(
    input_roots: Iterable[PathLike],
    extensions: Iterable[str],
    exclude_dirs: Iterable[str] = (),
    registry: Optional[IgnoreRegistry] = None,
    respect_gitignore: bool = True,
    diagnostics: Optional[Diagnostics] = None,
) -> List[CollectedFile]:
    """
    Collect ``(relative_path, absolute_path)`` pairs for every wanted file.

    A file is wanted when its extension (compared case-sensitively, without
    the dot) is in *extensions* and, with *respect_gitignore*, *registry*
    does not ignore it. Directories named in *exclude_dirs* are not entered.
    Roots are walked independently but a physical file is reported once, under
    the first root that reaches it. The result is sorted by relative path.
    """
    if diagnostics is None:
        diagnostics = Diagnostics(sys.stderr)
    if registry is None:
        registry = IgnoreRegistry()

    wanted = set(extensions)
    excluded = set(exclude_dirs)
    found: List[CollectedFile] = []
    seen: Set[Path] = set()

    for root in input_roots:
        # registry anchors are canonical, so the root must be too
        root = Path(root).resolve()
        for candidate in _walk(root, excluded, registry, respect_gitignore, diagnostics):
            if _extension(candidate.path.name) not in wanted:
                continue

            try:
                canonical = candidate.path.resolve()
            except (OSError, RuntimeError):
                canonical = candidate.path
            if canonical in seen:
                continue

            if respect_gitignore and _is_ignored(candidate, registry):
                continue

            found.append(CollectedFile(candidate.relative_path, canonical))
            seen.add(canonical)

    found.sort(key=lambda f: f.relative_path.parts)
    return found
