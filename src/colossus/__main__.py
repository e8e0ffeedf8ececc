"""Entry point for `python -m colossus` and the `colossus` CLI script."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from colossus import get_version
from colossus.collaborators import AiderCodeAgent, CodeAgentError
from colossus.frontend import NO_CONTEXT, change_code, list_context_files, write_mode_request, write_transcript
from colossus.models import CONTEXT_FILE, OPERATOR_MODES, TRANSCRIPT_FILE
from colossus.scheduler import Orchestrator
from colossus.settings import RuntimeSettings, StartupCheckError, check_requirements, load_project_env


LOG_LEVEL_CHOICES = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _add_project_dir(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-d",
        "--dir",
        dest="project_dir",
        type=Path,
        default=None,
        help="Project directory (default: COLOSSUS_PROJECT_DIR or the current directory)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="colossus", description="Autonomous planning and development orchestrator")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=LOG_LEVEL_CHOICES,
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run all planning and development stages until interrupted")
    _add_project_dir(serve)
    serve.add_argument("-c", "--code-model", default=None, help="Model passed to the code agent")
    serve.add_argument("--mode-file", default=None, help="Mode toggle file, relative to the project directory")
    serve.add_argument("--skip-checks", action="store_true", help="Skip git and API key startup checks")

    init = subparsers.add_parser("init", help="Create empty TRANSCRIPT.md and CONTEXT.md when missing")
    _add_project_dir(init)

    mode = subparsers.add_parser("mode", help="Request an activity mode change")
    mode.add_argument("mode", choices=sorted(item.value for item in OPERATOR_MODES))
    _add_project_dir(mode)
    mode.add_argument("--mode-file", default=None, help="Mode toggle file, relative to the project directory")

    transcript = subparsers.add_parser("transcript", help="Replace TRANSCRIPT.md from a file or stdin")
    _add_project_dir(transcript)
    transcript.add_argument("--file", type=Path, default=None, help="Read the transcript from this file")

    contexts = subparsers.add_parser("contexts", help="List CONTEXT_*.md load scripts available to change requests")
    _add_project_dir(contexts)

    change = subparsers.add_parser("change", help="Send one direct change or question to the code agent")
    change.add_argument("message", help="Natural-language request")
    _add_project_dir(change)
    change.add_argument("--context", default=NO_CONTEXT, help="CONTEXT_*.md load script, or None")
    change.add_argument("-c", "--code-model", default=None, help="Model passed to the code agent")
    return parser


def load_settings(args: argparse.Namespace) -> RuntimeSettings:
    """Build settings from the environment, then apply command-line overrides."""
    if args.project_dir is not None:
        load_project_env(args.project_dir)
    settings = RuntimeSettings.from_env()
    overrides: dict[str, object] = {}
    if args.project_dir is not None:
        overrides["project_dir"] = str(args.project_dir)
    if getattr(args, "code_model", None):
        overrides["code_model"] = args.code_model
    if getattr(args, "mode_file", None):
        overrides["mode_file"] = args.mode_file
    if overrides:
        settings = dataclasses.replace(settings, **overrides).normalized()
    return settings


def cmd_serve(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    if args.skip_checks:
        load_project_env(settings.project_path)
    else:
        check_requirements(settings)

    example = AiderCodeAgent(settings.code_agent_argv()).build_argv(
        "<instruction>",
        ["<files>"],
        settings.code_model_or_none,
    )
    print(f"Project directory: {settings.project_path.resolve()}")
    print(f"Code model: {settings.code_model or 'agent default'}")
    print(f"Mode file: {settings.mode_file_path()}")
    print(f"Code agent: {' '.join(example)}")

    orchestrator = Orchestrator(settings)
    orchestrator.run_until_shutdown()
    return 0


def cmd_init(settings: RuntimeSettings) -> int:
    project_path = settings.project_path
    if not project_path.is_dir():
        raise StartupCheckError(f"Project directory does not exist: {project_path}")
    for name in (TRANSCRIPT_FILE, CONTEXT_FILE):
        path = project_path / name
        if path.exists():
            logging.info("%s already exists", name)
            continue
        path.touch()
        print(f"Created {path}")
    return 0


def cmd_mode(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    mode = write_mode_request(settings.mode_file_path(), args.mode)
    print(f"Requested mode: {mode.value}")
    return 0


def cmd_transcript(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    if args.file is not None:
        if not args.file.is_file():
            raise FileNotFoundError(f"Transcript file does not exist: {args.file}")
        content = args.file.read_text(encoding="utf-8")
    else:
        content = sys.stdin.read()
    path = write_transcript(settings.project_path, content)
    print(f"Wrote {path}")
    return 0


def cmd_contexts(settings: RuntimeSettings) -> int:
    for name in list_context_files(settings.project_path):
        print(name)
    return 0


def cmd_change(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    available = list_context_files(settings.project_path)
    if args.context != NO_CONTEXT and args.context not in available:
        raise ValueError(f"Unknown context {args.context!r}; available: {', '.join(available)}")
    agent = AiderCodeAgent(settings.code_agent_argv(), timeout=settings.invocation_timeout)
    output = change_code(
        agent,
        settings.project_path,
        args.message,
        context=args.context,
        model=settings.code_model_or_none,
    )
    print(output, end="" if output.endswith("\n") else "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args)
        if args.command == "serve":
            return cmd_serve(args, settings)
        if args.command == "init":
            return cmd_init(settings)
        if args.command == "mode":
            return cmd_mode(args, settings)
        if args.command == "transcript":
            return cmd_transcript(args, settings)
        if args.command == "contexts":
            return cmd_contexts(settings)
        if args.command == "change":
            return cmd_change(args, settings)
    except StartupCheckError as exc:
        logging.error("Startup check failed: %s", exc)
        return 1
    except CodeAgentError as exc:
        logging.error("%s", exc)
        return 1
    except (OSError, ValueError) as exc:
        logging.error("Unable to run %s: %s", args.command, exc)
        return 1
    raise AssertionError(f"unhandled command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
