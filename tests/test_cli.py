import io
import os
import shlex
import subprocess
import sys
from pathlib import Path

import pytest

from colossus.__main__ import main


REPO_ROOT = Path(__file__).resolve().parents[1]


def test_init_creates_missing_files(project_dir: Path) -> None:
    (project_dir / "CONTEXT.md").write_text("/add src\n", encoding="utf-8")

    assert main(["init", "-d", str(project_dir)]) == 0

    assert (project_dir / "TRANSCRIPT.md").read_text(encoding="utf-8") == ""
    assert (project_dir / "CONTEXT.md").read_text(encoding="utf-8") == "/add src\n"


def test_init_missing_directory_fails(tmp_path: Path) -> None:
    assert main(["init", "-d", str(tmp_path / "missing")]) == 1


def test_mode_writes_toggle_file(project_dir: Path) -> None:
    assert main(["mode", "developing", "-d", str(project_dir)]) == 0
    assert (project_dir / ".colossus-mode").read_text(encoding="utf-8") == "developing\n"


def test_mode_rejects_error_state(project_dir: Path) -> None:
    with pytest.raises(SystemExit):
        main(["mode", "error", "-d", str(project_dir)])


def test_transcript_from_file_and_stdin(
    project_dir: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = tmp_path / "chat.md"
    source.write_text("User: hello\n", encoding="utf-8")
    assert main(["transcript", "-d", str(project_dir), "--file", str(source)]) == 0
    assert (project_dir / "TRANSCRIPT.md").read_text(encoding="utf-8") == "User: hello\n"

    monkeypatch.setattr(sys, "stdin", io.StringIO("User: goodbye\n"))
    assert main(["transcript", "-d", str(project_dir)]) == 0
    assert (project_dir / "TRANSCRIPT.md").read_text(encoding="utf-8") == "User: goodbye\n"

    assert main(["transcript", "-d", str(project_dir), "--file", str(tmp_path / "nope.md")]) == 1


def test_change_runs_code_agent(
    project_dir: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    script = tmp_path / "fake_aider.py"
    script.write_text("import sys\nprint(' '.join(sys.argv[1:]))\n", encoding="utf-8")
    (project_dir / "CONTEXT_ui.md").write_text("/add ui\n", encoding="utf-8")
    monkeypatch.setenv("COLOSSUS_CODE_AGENT_COMMAND", f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}")

    assert main(["change", "add a footer", "-d", str(project_dir), "--context", "CONTEXT_ui.md"]) == 0
    assert "--message add a footer --load CONTEXT_ui.md" in capsys.readouterr().out


def test_change_reports_agent_failure(project_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    script = tmp_path / "broken_aider.py"
    script.write_text("import sys\nsys.exit(1)\n", encoding="utf-8")
    monkeypatch.setenv("COLOSSUS_CODE_AGENT_COMMAND", f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}")

    assert main(["change", "add a footer", "-d", str(project_dir)]) == 1


def test_serve_fails_startup_checks_outside_git_repo(project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("COLOSSUS_REQUIRE_GIT", raising=False)
    assert main(["serve", "-d", str(project_dir)]) == 1


def test_invalid_environment_exits_nonzero(project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLOSSUS_MAX_VERIFY_ATTEMPTS", "zero")
    assert main(["init", "-d", str(project_dir)]) == 1


def test_module_entry_point_runs(project_dir: Path) -> None:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT / "src"), env.get("PYTHONPATH")]))

    result = subprocess.run(
        [sys.executable, "-m", "colossus", "mode", "planning", "-d", str(project_dir)],
        cwd=REPO_ROOT,
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )

    assert result.returncode == 0, result.stderr
    assert "Requested mode: planning" in result.stdout
    assert (project_dir / ".colossus-mode").read_text(encoding="utf-8") == "planning\n"


def test_contexts_lists_load_scripts(project_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["contexts", "-d", str(project_dir)]) == 0
    assert capsys.readouterr().out == "None\n"

    (project_dir / "CONTEXT_ui.md").write_text("/add ui\n", encoding="utf-8")
    (project_dir / "CONTEXT_api.md").write_text("/add api\n", encoding="utf-8")
    assert main(["contexts", "-d", str(project_dir)]) == 0
    assert capsys.readouterr().out == "CONTEXT_api.md\nCONTEXT_ui.md\n"


def test_change_rejects_unknown_context(project_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    script = tmp_path / "fake_aider.py"
    script.write_text("open('called', 'w').close()\n", encoding="utf-8")
    monkeypatch.setenv("COLOSSUS_CODE_AGENT_COMMAND", f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}")

    assert main(["change", "add a footer", "-d", str(project_dir), "--context", "CONTEXT_missing.md"]) == 1
    assert not (project_dir / "called").exists()
