"""
Gitignore handling: rule compilation, ignore-file discovery and resolution.

Every directory holding a ``.gitignore`` gets its own :class:`IgnoreScope`.
A candidate path is judged by the deepest scope whose anchor contains it;
ancestor scopes are not consulted once a deeper one is found, even when the
deeper scope has nothing to say about the path.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pathspec
from pathspec.util import normalize_file

from .core import CompileError, Diagnostics

IGNORE_FILENAME = ".gitignore"
HIDDEN_PREFIX = "."
# Hidden, but still searched: ignore files are sometimes kept in here.
RESERVED_HIDDEN_DIR = ".git"
# Regex group pathspec sets when a pattern matched a parent directory.
_PARENT_DIR_GROUP = "ps_d"

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class IgnoreRule:
    """One non-blank, non-comment line of an ignore file."""

    pattern: str
    line: int
    negated: bool
    directory_only: bool
    anchored: bool

    @classmethod
    def parse(cls, pattern: str, line: int) -> "IgnoreRule":
        negated = pattern.startswith("!")
        body = (pattern[1:] if negated else pattern).rstrip()
        return cls(
            pattern=pattern,
            line=line,
            negated=negated,
            directory_only=body.endswith("/"),
            # a slash anywhere but the end ties the pattern to the anchor
            anchored="/" in body.rstrip("/"),
        )


@dataclass(frozen=True)
class IgnoreScope:
    """
    Ordered ignore rules bound to an anchor directory.

    ``anchor`` is ``None`` for the global scope. Later rules override earlier
    ones, so a ``!pattern`` re-includes what a previous rule excluded.
    """

    anchor: Optional[Path]
    rules: Tuple[IgnoreRule, ...] = ()
    source: Optional[Path] = None
    spec: Optional[pathspec.GitIgnoreSpec] = field(
        default=None, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.spec is None:
            spec = pathspec.GitIgnoreSpec.from_lines([r.pattern for r in self.rules])
            object.__setattr__(self, "spec", spec)

    def matches(self, relative_path: PathLike, is_dir: bool = False) -> bool:
        """Return True when *relative_path* is ignored by this scope.

        Directories are matched with a trailing slash, which is what
        directory-only rules need. A file is judged only by the rules that
        match the file path itself: a rule that reaches it through one of its
        parent directories (``build/`` for ``build/x.txt``) does not count.
        """
        rel = PurePath(relative_path).as_posix()
        if rel in ("", "."):
            # the anchor itself
            return False
        if is_dir:
            return bool(self.spec.match_file(rel + "/"))

        rel = normalize_file(rel)
        ignored = False
        for pattern in self.spec.patterns:
            if pattern.include is None:
                continue
            result = pattern.match_file(rel)
            if result is None or result.match.groupdict().get(_PARENT_DIR_GROUP):
                continue
            ignored = pattern.include
        return ignored


# Rule compiler
def _pattern_problem(pattern: str) -> Optional[str]:
    """Describe what is syntactically wrong with *pattern*, if anything."""
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "\\":
            if i + 1 >= n:
                return "trailing backslash"
            i += 2
            continue
        if ch == "[":
            j = i + 1
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 2 if pattern[j] == "\\" else 1
            if j >= n:
                return "unclosed character class"
            i = j + 1
            continue
        i += 1
    return None


def compile_patterns(
    anchor: Optional[PathLike],
    lines: Iterable[str],
    source: Optional[Path] = None,
) -> IgnoreScope:
    """Compile ignore-file *lines* into a scope anchored at *anchor*.

    Blank lines and ``#`` comments are skipped. The first malformed pattern
    raises :class:`CompileError` naming its line number.
    """
    rules: List[IgnoreRule] = []
    for number, raw in enumerate(lines, start=1):
        pattern = raw.rstrip("\r\n")
        if not pattern.strip() or pattern.startswith("#"):
            continue
        problem = _pattern_problem(pattern)
        if problem is None:
            try:
                pathspec.GitIgnoreSpec.from_lines([pattern])
            except ValueError as e:
                problem = str(e)
        if problem is not None:
            raise CompileError(source, problem, line=number, pattern=pattern)
        rules.append(IgnoreRule.parse(pattern, number))

    return IgnoreScope(
        anchor=Path(anchor) if anchor is not None else None,
        rules=tuple(rules),
        source=source,
    )


def compile_scope(anchor: PathLike, pattern_source: PathLike) -> IgnoreScope:
    """Read *pattern_source* and compile it into a scope anchored at *anchor*."""
    anchor = Path(anchor)
    source = Path(pattern_source)
    if not anchor.is_dir():
        raise CompileError(source, f"anchor directory '{anchor}' does not exist")
    try:
        with source.open("r", encoding="utf-8-sig") as fh:
            lines = fh.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise CompileError(source, f"could not read ignore file: {e}")
    return compile_patterns(anchor, lines, source=source)


# Ignore-file discovery
def _should_descend(name: str) -> bool:
    return not name.startswith(HIDDEN_PREFIX) or name == RESERVED_HIDDEN_DIR


def discover_ignore_files(
    roots: Iterable[PathLike],
    extra_ignore_files: Iterable[PathLike] = (),
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[Path, Path]:
    """
    Map every directory under *roots* that holds a ``.gitignore`` to that file.

    Hidden directories are not searched, except ``.git``. Roots that do not
    exist are skipped. Each of *extra_ignore_files* is anchored at its own
    parent directory and wins over a ``.gitignore`` found in the same place.
    """
    if diagnostics is None:
        diagnostics = Diagnostics(sys.stderr)

    found: Dict[Path, Path] = {}
    for root in roots:
        try:
            root = Path(root).resolve(strict=True)
        except (OSError, RuntimeError):
            continue
        if not root.is_dir():
            continue

        stack = [root]
        while stack:
            directory = stack.pop()
            children: List[Path] = []
            try:
                with os.scandir(directory) as entries:
                    for entry in entries:
                        try:
                            if entry.name == IGNORE_FILENAME and entry.is_file():
                                found[directory] = Path(entry.path)
                                continue
                            is_dir = entry.is_dir(follow_symlinks=False)
                        except OSError as e:
                            diagnostics.warn(
                                Diagnostics.TRAVERSAL,
                                Path(entry.path),
                                f"Failed to access entry {entry.path}: {e}",
                            )
                            continue
                        if is_dir and _should_descend(entry.name):
                            children.append(Path(entry.path))
            except OSError as e:
                diagnostics.warn(
                    Diagnostics.TRAVERSAL,
                    directory,
                    f"Failed to read directory {directory}: {e}",
                )
                continue
            stack.extend(sorted(children, reverse=True))

    for extra in extra_ignore_files:
        try:
            extra = Path(extra).resolve(strict=True)
        except (OSError, RuntimeError) as e:
            diagnostics.warn(
                Diagnostics.TRAVERSAL,
                Path(extra),
                f"Additional gitignore file {extra} is not accessible: {e}",
            )
            continue
        found[extra.parent] = extra

    return found


# Resolver
def _is_within(path: Path, anchor: Path) -> bool:
    parts = anchor.parts
    return path.parts[: len(parts)] == parts


class IgnoreRegistry:
    """
    Read-only map of anchor directory -> :class:`IgnoreScope`.

    An optional global scope applies everywhere and is checked first.
    """

    def __init__(
        self,
        scopes: Optional[Mapping[Path, IgnoreScope]] = None,
        global_scope: Optional[IgnoreScope] = None,
    ) -> None:
        self._scopes: Dict[Path, IgnoreScope] = dict(scopes or {})
        self._global_scope = global_scope

    @classmethod
    def build(
        cls,
        discovered: Mapping[Path, Path],
        global_scope: Optional[IgnoreScope] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> "IgnoreRegistry":
        """Compile each discovered ignore file; broken ones are left out."""
        if diagnostics is None:
            diagnostics = Diagnostics(sys.stderr)

        scopes: Dict[Path, IgnoreScope] = {}
        for anchor in sorted(discovered):
            source = discovered[anchor]
            try:
                scopes[anchor] = compile_scope(anchor, source)
            except CompileError as e:
                diagnostics.warn(
                    Diagnostics.COMPILE,
                    Path(source),
                    f"Failed to parse gitignore file {source}: {e}",
                )
        return cls(scopes, global_scope=global_scope)

    @classmethod
    def discover_and_load(
        cls,
        roots: Iterable[PathLike],
        extra_ignore_files: Iterable[PathLike] = (),
        global_scope: Optional[IgnoreScope] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> "IgnoreRegistry":
        if diagnostics is None:
            diagnostics = Diagnostics(sys.stderr)
        discovered = discover_ignore_files(roots, extra_ignore_files, diagnostics)
        return cls.build(discovered, global_scope=global_scope, diagnostics=diagnostics)

    @property
    def anchors(self) -> List[Path]:
        return sorted(self._scopes)

    @property
    def global_scope(self) -> Optional[IgnoreScope]:
        return self._global_scope

    def __len__(self) -> int:
        return len(self._scopes)

    def __contains__(self, anchor: object) -> bool:
        return anchor in self._scopes

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(anchors={len(self._scopes)}, "
            f"global_scope={self._global_scope is not None})"
        )

    def scope_for(self, path: PathLike) -> Optional[IgnoreScope]:
        """Return the deepest scope whose anchor contains *path*."""
        path = Path(path)
        best: Optional[IgnoreScope] = None
        best_depth = -1
        for anchor, scope in self._scopes.items():
            if _is_within(path, anchor):
                depth = len(anchor.parts)
                if depth > best_depth:
                    best, best_depth = scope, depth
        return best

    def should_ignore(
        self,
        path: PathLike,
        relative_path: Optional[PathLike] = None,
        is_dir: Optional[bool] = None,
    ) -> bool:
        """
        Decide whether the absolute *path* is ignored.

        *relative_path* is only used by the global scope and defaults to
        *path*. *is_dir* defaults to asking the filesystem.
        """
        path = Path(path)
        if is_dir is None:
            is_dir = path.is_dir()

        if self._global_scope is not None:
            rel = path if relative_path is None else relative_path
            if self._global_scope.matches(rel, is_dir):
                return True

        scope = self.scope_for(path)
        if scope is None:
            return False
        return scope.matches(path.relative_to(scope.anchor), is_dir)

    def should_ignore_directory(
        self, path: PathLike, relative_path: Optional[PathLike] = None
    ) -> bool:
        """Pruning check for a directory about to be descended into."""
        return self.should_ignore(path, relative_path, is_dir=True)
