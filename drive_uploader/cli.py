"""Command line interface for drive_uploader."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import (
    UploadProgressDisplay,
    prompt_conflict_action,
    prompt_folder_name,
    render_configuration_summary,
    render_listing,
)
from .models import ConflictAction, PendingUpload, UploadConfig, UploadPhase
from .orchestrator import UploadOrchestrator
from .orchestrator.file_collector import FileCollector
from .services import DriveAPIClient, local_entries

logger = logging.getLogger(__name__)

CONFLICT_CHOICES = ("ask", "merge", "replace", "rename", "abort")
EXIT_CANCELLED = 130
MAX_RENAME_ATTEMPTS = 5


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _normalize_dest(dest: Optional[str]) -> str:
    """Backend paths are absolute with no trailing slash; root is '/'."""
    if dest is None:
        return "/"
    value = dest.strip().strip("/")
    return "/" + value if value else "/"


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _selection_mode(sources: Sequence[Path], as_drop: bool) -> str:
    """Pick how sources are collected: 'files', 'folder' or 'drop'."""
    dirs = [s for s in sources if s.is_dir()]
    if as_drop or (dirs and len(dirs) != len(sources)) or len(dirs) > 1:
        return "drop"
    if dirs:
        return "folder"
    return "files"


async def _collect(sources: Sequence[Path], mode: str, page_size: int) -> PendingUpload:
    if mode == "folder":
        return FileCollector.from_folder_picker(sources[0])
    if mode == "drop":
        return await FileCollector.from_drop(local_entries(sources, page_size))
    return FileCollector.from_file_picker(sources)


async def _resolve_conflict(
    orchestrator: UploadOrchestrator,
    on_conflict: str,
    rename_to: Optional[str],
    interrupt: Optional[_InterruptHandler] = None,
) -> UploadPhase:
    decision = orchestrator.conflict
    if on_conflict == "abort":
        await orchestrator.cancel()
        raise CLIError(f"folder '{decision.folder_name}' already exists in {orchestrator.dest_path}")

    # Prompts block the loop, so they run without the loop's SIGINT handler
    prompting = interrupt.suspended if interrupt is not None else contextlib.nullcontext

    if on_conflict == "ask":
        with prompting():
            action = prompt_conflict_action(decision)
        if action is None:
            return await orchestrator.cancel()
    else:
        action = ConflictAction(on_conflict)

    if action != ConflictAction.RENAME:
        return await orchestrator.resolve_conflict(action)

    await orchestrator.resolve_conflict(ConflictAction.RENAME)
    name = rename_to
    for _ in range(MAX_RENAME_ATTEMPTS):
        if name is None:
            with prompting():
                name = prompt_folder_name(decision)
        phase = await orchestrator.rename(name)
        if phase != UploadPhase.CONFLICT_PENDING:
            return phase
        if on_conflict != "ask" and rename_to is not None:
            await orchestrator.cancel()
            raise CLIError(f"cannot rename to '{rename_to}': {decision.message}")
        name = None

    await orchestrator.cancel()
    raise CLIError("no usable folder name given")


class _InterruptHandler:
    """Routes Ctrl-C to ``orchestrator.cancel()`` while transfers can run."""

    def __init__(self, orchestrator: UploadOrchestrator):
        self._orchestrator = orchestrator
        self._loop = asyncio.get_running_loop()
        self._cancels: set = set()
        self.installed = False

    def install(self) -> bool:
        try:
            self._loop.add_signal_handler(signal.SIGINT, self._on_interrupt)
        except (NotImplementedError, RuntimeError):
            # No loop signal handlers on this platform; KeyboardInterrupt still applies
            return False
        self.installed = True
        return True

    def remove(self) -> None:
        if self.installed:
            self._loop.remove_signal_handler(signal.SIGINT)
            self.installed = False

    @contextlib.contextmanager
    def suspended(self) -> Iterator[None]:
        """Restore the default handler so Ctrl-C interrupts a blocking prompt."""
        was_installed = self.installed
        self.remove()
        try:
            yield
        finally:
            if was_installed:
                self.install()

    def _on_interrupt(self) -> None:
        task = self._loop.create_task(self._orchestrator.cancel())
        self._cancels.add(task)
        task.add_done_callback(self._cancels.discard)


async def _run_upload(
    sources: List[Path],
    dest: str,
    config: UploadConfig,
    as_drop: bool,
    on_conflict: str,
    rename_to: Optional[str],
) -> int:
    display = UploadProgressDisplay()
    mode = _selection_mode(sources, as_drop)
    pending = await _collect(sources, mode, config.read_page_size)
    if pending.is_empty:
        raise CLIError("nothing to upload")
    display.on_select(pending)

    async with DriveAPIClient(config.api_url, config.token, config.timeout) as api:

        async def refresh() -> None:
            render_listing(dest, await api.list_files(dest))

        orchestrator = UploadOrchestrator(api, dest, config, on_uploaded=refresh)
        orchestrator.on_phase_change(display.on_phase_change)
        orchestrator.on_progress(display.on_progress)
        orchestrator.on_rename_rejected(display.on_rename_rejected)
        orchestrator.on_complete(display.on_complete)
        orchestrator.on_error(display.on_error)
        interrupt = _InterruptHandler(orchestrator)
        interrupt.install()

        try:
            phase = await orchestrator.select(pending)
            if phase == UploadPhase.CONFLICT_PENDING:
                phase = await _resolve_conflict(orchestrator, on_conflict, rename_to, interrupt)
        finally:
            interrupt.remove()

    if phase == UploadPhase.SUCCESS:
        return 0
    if phase == UploadPhase.ERROR:
        return 1
    display.on_cancel()
    return EXIT_CANCELLED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drive-up",
        description="Upload files or folders to the drive backend.",
    )
    parser.add_argument("sources", nargs="*", type=Path, help="Files and/or folders to upload")
    parser.add_argument(
        "-d",
        "--dest",
        default=None,
        help="Destination folder path (example: / or /Projects/2026)",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Treat sources like dropped items (skips empty files)",
    )
    parser.add_argument(
        "--on-conflict",
        choices=CONFLICT_CHOICES,
        default="ask",
        help="What to do when the top-level folder already exists (default: ask)",
    )
    parser.add_argument(
        "--rename-to",
        default=None,
        help="Folder name to use with --on-conflict rename",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Backend API URL (default from DRIVE_API_URL)",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Bearer token (default from DRIVE_API_TOKEN)",
    )
    parser.add_argument(
        "-n",
        "--concurrency",
        type=int,
        default=None,
        help="Uploads per batch (default from UPLOADER_CONCURRENCY or 3)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="drive-up (from drive_uploader)",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.sources:
        parser.print_help()
        return 0

    sources = [Path(s).expanduser() for s in args.sources]
    missing = [s for s in sources if not s.exists()]
    if missing:
        print(f"ERROR: source does not exist: {missing[0]}", file=sys.stderr)
        return 1

    if args.rename_to and args.on_conflict not in ("rename", "ask"):
        print("ERROR: --rename-to requires --on-conflict rename", file=sys.stderr)
        return 1

    try:
        config = UploadConfig.from_env(
            api_url=args.api_url,
            token=args.token,
            concurrency=args.concurrency,
        )
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 1

    dest = _normalize_dest(args.dest)
    render_configuration_summary(
        {
            "Sources": ", ".join(str(s) for s in sources),
            "Mode": _selection_mode(sources, args.drop),
            "Dest": dest,
            "API": config.api_url,
            "Token": "set" if config.token else "-",
            "Concurrency": config.concurrency,
            "On Conflict": args.on_conflict,
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_upload(
                sources=sources,
                dest=dest,
                config=config,
                as_drop=args.drop,
                on_conflict=args.on_conflict,
                rename_to=args.rename_to,
            )
        )
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return EXIT_CANCELLED


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
