"""
Core logic shared by the md-concat modules: errors, console output and the
Markdown writer.
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, List, Optional, Tuple, Union

from colorama import Fore, Style

PREFIX = "[md-concat]"


# Exceptions
class MdConcatError(Exception): ...
class InvalidRootError(MdConcatError): ...
class ConfigFileError(MdConcatError): ...
class OutputError(MdConcatError): ...


class CompileError(MdConcatError):
    """Raised when an ignore file cannot be compiled into a scope.

    ``line`` is 1-based and ``None`` when the whole file failed (for example
    when it could not be read at all).
    """

    def __init__(
        self,
        source: Union[Path, str, None],
        message: str,
        line: Optional[int] = None,
        pattern: Optional[str] = None,
    ) -> None:
        self.source = source
        self.message = message
        self.line = line
        self.pattern = pattern
        where = str(source) if source is not None else "<patterns>"
        if line is not None:
            where = f"{where}:{line}"
        detail = f" ({pattern!r})" if pattern is not None else ""
        super().__init__(f"{where}: {message}{detail}")


# Console helpers
def echo(msg: str, color: str = "", file: Optional[IO[str]] = None) -> None:
    stream = file if file is not None else sys.stdout
    if color and stream.isatty():
        msg = color + msg + Style.RESET_ALL
    print(msg, file=stream)


def echo_error(msg: str, file: Optional[IO[str]] = None) -> None:
    echo(f"Error: {msg}", Fore.RED, file=file)


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem met while scanning or writing."""

    kind: str
    path: Optional[Path]
    message: str


class Diagnostics:
    """
    Collects non-fatal problems instead of aborting the run.

    Every event is kept in :attr:`events`; when *stream* is given it is also
    echoed there as a yellow warning.
    """

    COMPILE = "compile"
    TRAVERSAL = "traversal"
    RELATIVE_PATH = "relative-path"
    READ = "read"

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self.stream = stream
        self.events: List[Diagnostic] = []

    def warn(self, kind: str, path: Optional[Path], message: str) -> Diagnostic:
        event = Diagnostic(kind=kind, path=path, message=message)
        self.events.append(event)
        if self.stream is not None:
            echo(f"{PREFIX} Warning: {message}", Fore.YELLOW, file=self.stream)
        return event

    def of_kind(self, kind: str) -> List[Diagnostic]:
        return [e for e in self.events if e.kind == kind]


# Token estimation
_TOKEN_STRATEGIES: List[Tuple[str, float]] = [
    ("Conservative", 3.0),
    ("Claude-style", 3.5),
    ("GPT-style", 4.0),
    ("Word-based", 5.0),
]


def estimate_tokens_report(char_count: int, word_count: int) -> str:
    lines = [
        "=== Token Count Estimates ===",
        f"Characters: {char_count}",
        f"Words: {word_count}",
        "",
    ]
    for name, chars_per_token in _TOKEN_STRATEGIES:
        lines.append(f"{name}: ~{math.ceil(char_count / chars_per_token)} tokens")
    return "\n".join(lines) + "\n"


@dataclass
class TokenCounter:
    """Running character/word totals so the document never sits in memory."""

    char_count: int = 0
    word_count: int = 0

    def add_text(self, text: str) -> None:
        self.char_count += len(text)
        self.word_count += len(text.split())

    def report(self) -> str:
        return estimate_tokens_report(self.char_count, self.word_count)


@dataclass
class WriteSummary:
    files_written: int = 0
    unreadable: List[str] = field(default_factory=list)
    counter: TokenCounter = field(default_factory=TokenCounter)


# Misc helpers
READ_ERROR = "Error: Could not read file content (e.g., binary or non-UTF-8)"


def _is_binary(data: bytes) -> bool:
    return b"\0" in data


def _render_content(
    path: Path, rel: str, summary: WriteSummary, diagnostics: Optional[Diagnostics]
) -> str:
    """Return the fenced body for *path*, or an inline error marker."""
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        message = f"Error: Could not open file: {e}"
    else:
        text: Optional[str] = None
        if not _is_binary(raw):
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                text = None
        if text is not None:
            return text if text.endswith("\n") else text + "\n"
        message = READ_ERROR

    summary.unreadable.append(rel)
    if diagnostics is not None:
        diagnostics.warn(Diagnostics.READ, Path(path), f"{rel}: {message}")
    return f"\n{message}\n"


# Main writer
def write_markdown(
    files: Iterable[Tuple[Path, Path]],
    out_path: Path,
    diagnostics: Optional[Diagnostics] = None,
) -> WriteSummary:
    """
    Write every ``(relative_path, absolute_path)`` pair to *out_path*.

    Each file becomes a ``## relative/path`` heading followed by a fenced
    block tagged with the file extension. Files that cannot be opened or
    decoded get an inline error message instead of content; only a failure to
    create or write *out_path* itself raises :class:`OutputError`.
    """
    try:
        out_path = Path(out_path).resolve()
    except (OSError, RuntimeError) as e:
        raise OutputError(f"Could not resolve output path '{out_path}': {e}")

    if not out_path.parent.exists():
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputError(f"Could not create directory '{out_path.parent}': {e}")

    summary = WriteSummary()
    try:
        with out_path.open("w", encoding="utf-8", newline="\n") as out_fh:
            for rel_path, abs_path in files:
                rel = Path(rel_path).as_posix()
                ext = Path(rel_path).suffix[1:]
                body = _render_content(abs_path, rel, summary, diagnostics)
                section = f"## {rel}\n\n```{ext}\n{body}```\n\n"
                out_fh.write(section)
                summary.counter.add_text(section)
                summary.files_written += 1
    except OSError as e:
        raise OutputError(f"Could not write to output file '{out_path}': {e}")

    return summary
