import sys
from pathlib import Path

from colossus.collaborators import AIDER_FLAGS, AiderCodeAgent, MakeBuildSystem, run_command
from colossus.models import Verb


def _script(tmp_path: Path, name: str, body: str) -> list[str]:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return [sys.executable, str(path)]


def test_aider_argv_layout() -> None:
    agent = AiderCodeAgent()
    assert agent.build_argv("do it", ["TRANSCRIPT.md", "PROJECT.md"], "gpt-4o", "CONTEXT.md") == [
        "aider",
        *AIDER_FLAGS,
        "--message",
        "do it",
        "--model",
        "gpt-4o",
        "--load",
        "CONTEXT.md",
        "TRANSCRIPT.md",
        "PROJECT.md",
    ]
    assert agent.build_argv("do it") == ["aider", "--no-suggest-shell-commands", "--yes-always", "--message", "do it"]


def test_run_command_captures_output_and_exit_code(tmp_path: Path) -> None:
    argv = _script(
        tmp_path,
        "fake.py",
        "import sys\nprint('out')\nprint('err', file=sys.stderr)\nsys.exit(3)\n",
    )
    result = run_command(argv, cwd=tmp_path)
    assert result.success is False
    assert result.exit_code == 3
    assert result.stdout == "out\n"
    assert result.stderr == "err\n"


def test_run_command_spawn_failure_does_not_raise(tmp_path: Path) -> None:
    result = run_command(["colossus-definitely-not-a-program"], cwd=tmp_path)
    assert result.success is False
    assert result.exit_code == -1
    assert "colossus-definitely-not-a-program" in result.stderr


def test_run_command_timeout_reports_failure(tmp_path: Path) -> None:
    argv = _script(tmp_path, "slow.py", "import time\ntime.sleep(30)\n")
    result = run_command(argv, cwd=tmp_path, timeout=0.5)
    assert result.success is False
    assert result.exit_code == -1
    assert "timed out" in result.stderr


def test_code_agent_runs_in_project_dir(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        "fake_aider.py",
        "import os, sys\n"
        "open(sys.argv[-1], 'w').write('edited\\n')\n"
        "print(os.getcwd())\n"
        "print(' '.join(sys.argv[1:]))\n",
    )
    project = tmp_path / "project"
    project.mkdir()

    result = AiderCodeAgent(command).invoke(project, "write it", ["PROJECT.md"])

    assert result.success is True
    assert (project / "PROJECT.md").read_text(encoding="utf-8") == "edited\n"
    assert str(project.resolve()) in result.stdout
    assert "--message write it PROJECT.md" in result.stdout


def test_build_system_appends_verb(tmp_path: Path) -> None:
    command = _script(
        tmp_path,
        "fake_make.py",
        "import sys\nprint(sys.argv[1])\nsys.exit(0 if sys.argv[1] == 'build' else 1)\n",
    )
    build_system = MakeBuildSystem(command)

    build = build_system.run(tmp_path, Verb.BUILD)
    test = build_system.run(tmp_path, Verb.TEST)

    assert (build.success, build.stdout) == (True, "build\n")
    assert (test.success, test.exit_code, test.stdout) == (False, 1, "test\n")


def test_run_command_rejected_argument_is_a_failed_result(tmp_path: Path) -> None:
    result = run_command([sys.executable, "-c", "pass", "bin\x00ary"], cwd=tmp_path)
    assert result.success is False
    assert result.exit_code == -1
    assert "null byte" in result.stderr
