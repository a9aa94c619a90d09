"""
End-to-end tests for the md-concat command line
"""

from pathlib import Path

import pytest

from mdconcat.cli import main


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def project(tmp_path):
    root = tmp_path.resolve() / "project"
    _write(root / ".gitignore", "build/\n*.log.py\n")
    _write(root / "app.py", "import os\n")
    _write(root / "pkg" / "util.py", "def f():\n    return 1\n")
    _write(root / "build" / "gen.py", "generated = True\n")
    _write(root / "vendor" / "dep.py", "vendored = True\n")
    _write(root / "debug.log.py", "noise\n")
    _write(root / "README.md", "# readme\n")
    return root


def test_concatenates_selected_files(project, tmp_path, capsys):
    """Gitignored and excluded files are left out of the document"""
    out = tmp_path / "out" / "snapshot.md"

    main([str(out), "--input-dirs", str(project), "--extensions", "py",
          "--exclude-dirs", "vendor"])

    assert out.read_text() == (
        "## app.py\n\n```py\nimport os\n```\n\n"
        "## pkg/util.py\n\n```py\ndef f():\n    return 1\n```\n\n"
    )
    stdout = capsys.readouterr().out
    assert "Successfully concatenated 2 files" in stdout
    assert "=== Token Count Estimates ===" in stdout


def test_no_gitignore_keeps_everything(project, tmp_path):
    """--no-gitignore disables .gitignore filtering"""
    out = tmp_path / "snapshot.md"

    main([str(out), "--input-dirs", str(project), "--extensions", ".py,md",
          "--no-gitignore"])

    text = out.read_text()
    for rel in ("app.py", "build/gen.py", "debug.log.py", "vendor/dep.py", "README.md"):
        assert f"## {rel}\n" in text


def test_config_patterns_apply_everywhere(project, tmp_path):
    """--config adds patterns even when .gitignore support is off"""
    config = _write(tmp_path / "extra.ignore", "# skip vendored code\nvendor/\n")
    out = tmp_path / "snapshot.md"

    main([str(out), "--input-dirs", str(project), "--extensions", "py",
          "--no-gitignore", "--config", str(config)])

    text = out.read_text()
    assert "## vendor/dep.py" not in text
    assert "## build/gen.py" in text


def test_additional_gitignore(project, tmp_path):
    """An extra ignore file anchored at the project replaces its .gitignore"""
    extra = _write(project / "snapshot.ignore", "pkg/\n")
    out = tmp_path / "snapshot.md"

    main([str(out), "--input-dirs", str(project), "--extensions", "py",
          "--additional-gitignore", str(extra)])

    text = out.read_text()
    assert "## pkg/util.py" not in text
    assert "## build/gen.py" in text


def test_duplicate_input_dirs_are_skipped(project, tmp_path, capsys):
    """The same directory given twice is walked once"""
    out = tmp_path / "snapshot.md"

    main([str(out), "--input-dirs", f"{project},{project}/../project",
          "--extensions", "md"])

    assert out.read_text().count("## README.md") == 1
    assert "Skipping duplicate directory" in capsys.readouterr().out


def test_missing_input_dir_is_fatal(tmp_path, capsys):
    """An inaccessible root exits with status 1"""
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "out.md"), "--input-dirs", str(tmp_path / "nope"),
              "--extensions", "py"])

    assert excinfo.value.code == 1
    assert "not accessible" in capsys.readouterr().err


def test_malformed_config_is_fatal(project, tmp_path, capsys):
    """A broken --config pattern aborts before anything is written"""
    config = _write(tmp_path / "bad.ignore", "ok\nbad[\n")
    out = tmp_path / "snapshot.md"

    with pytest.raises(SystemExit) as excinfo:
        main([str(out), "--input-dirs", str(project), "--extensions", "py",
              "--config", str(config)])

    assert excinfo.value.code == 1
    assert not out.exists()
    assert "bad.ignore:2" in capsys.readouterr().err


def test_broken_gitignore_only_warns(project, tmp_path, capsys):
    """A malformed nested .gitignore is reported and skipped"""
    _write(project / "pkg" / ".gitignore", "[oops\n")
    out = tmp_path / "snapshot.md"

    main([str(out), "--input-dirs", str(project), "--extensions", "py"])

    assert "## pkg/util.py" in out.read_text()
    captured = capsys.readouterr()
    assert "Failed to parse gitignore file" in captured.err
    assert "1 warning(s) reported" in captured.out


def test_unwritable_output_is_fatal(project, tmp_path, capsys):
    """Output below a regular file exits with status 1"""
    blocker = _write(tmp_path / "blocker", "")

    with pytest.raises(SystemExit) as excinfo:
        main([str(blocker / "out.md"), "--input-dirs", str(project),
              "--extensions", "py"])

    assert excinfo.value.code == 1
    assert "Error:" in capsys.readouterr().err
