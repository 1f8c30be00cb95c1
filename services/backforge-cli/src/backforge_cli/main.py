"""CLI entry point - thin adapter over backforge-core."""

from __future__ import annotations

import asyncio
import tomllib
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

import orjson
import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Group
from rich.panel import Panel
from rich.table import Table

from backforge_core import __version__, build_status_lines, find_duplicate_names
from backforge_core.ports import (
    BatchError,
    CorrectionError,
    ModelError,
    PipelineError,
    PreliminaryError,
    StorageError,
)
from backforge_io import FileSystemStateStore
from backforge_schemas.config import RunConfig
from backforge_schemas.exit_codes import DOMAIN_PREFIXES, ExitCode, resolve_exit_code
from backforge_schemas.history import HistoryEntry
from backforge_schemas.pipeline import PipelineState
from backforge_schemas.primitives import PIPELINE_PHASE_ORDER, PhaseName, PhaseStatus
from backforge_schemas.responses import (
    ApiResponse,
    ErrorResponse,
    MetaInfo,
    NamingCheckResult,
    NamingIssueEntry,
    PhaseStatusEntry,
    PipelineStatusResult,
)

CONFIG_OPTION = typer.Option(
    Path("backforge.toml"),
    "--config",
    "-c",
    help="Path to backforge TOML config",
)
JSON_OPTION = typer.Option(False, "--json", help="Output result as JSON")
NAMES_ARGUMENT = typer.Argument(
    ..., help="JSON file holding a list of names or an object keyed by name"
)

app = typer.Typer(
    help="Phased backend generation pipeline",
    no_args_is_help=True,
)

ResponseT = TypeVar("ResponseT")

_DOMAIN_ERRORS = (
    BatchError,
    CorrectionError,
    ModelError,
    PipelineError,
    PreliminaryError,
    StorageError,
)


class _ConfigError(Exception):
    """Raised for CLI configuration issues."""


@app.callback()
def main() -> None:
    """Backforge CLI."""


@app.command()
def version() -> None:
    """Display version information."""
    rprint(f"[bold]backforge[/bold] v{__version__}")


@app.command("status")
def status(
    config_path: Path = CONFIG_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Show per-phase freshness of the stored pipeline state.

    Raises:
        typer.Exit: With the resolved exit code when loading fails.
    """
    try:
        config = _load_run_config(config_path)
        state, history = asyncio.run(_load_pipeline(Path(config.state_dir)))
        result = _build_status_result(state, history)
    except Exception as exc:
        error = _error_from_exception(exc)
        _render_error(error, json_output=json_output)
        raise typer.Exit(code=_exit_code_for(exc, error)) from None
    if json_output:
        response: ApiResponse[PipelineStatusResult] = ApiResponse(
            data=result,
            error=None,
            meta=MetaInfo(timestamp=_now_timestamp()),
        )
        print(response.model_dump_json())
        return
    _render_status(result, build_status_lines(state))


@app.command("check-names")
def check_names(
    names_path: Path = NAMES_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """Report names that collide case-insensitively.

    Raises:
        typer.Exit: With a non-zero exit code when duplicates are found or the
            input cannot be read.
    """
    try:
        names = _load_names(names_path)
    except Exception as exc:
        error = _error_from_exception(exc)
        _render_error(error, json_output=json_output)
        raise typer.Exit(code=_exit_code_for(exc, error)) from None
    issues = find_duplicate_names(names)
    result = NamingCheckResult(
        checked=len(names),
        issues=[
            NamingIssueEntry(
                name=issue.value, canonical=issue.canonical, message=issue.message
            )
            for issue in issues
        ],
    )
    if json_output:
        response: ApiResponse[NamingCheckResult] = ApiResponse(
            data=result,
            error=None,
            meta=MetaInfo(timestamp=_now_timestamp()),
        )
        print(response.model_dump_json())
    else:
        _render_naming(result)
    if issues:
        raise typer.Exit(code=resolve_exit_code("duplicate_name", domain="naming"))


def _now_timestamp() -> str:
    timestamp = datetime.now(UTC).isoformat()
    return timestamp.replace("+00:00", "Z")


def _load_run_config(config_path: Path) -> RunConfig:
    _load_dotenv(config_path)
    if not config_path.exists():
        raise _ConfigError(f"Config not found: {config_path}")
    try:
        with open(config_path, "rb") as handle:
            payload = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise _ConfigError(f"Failed to read config: {exc}") from exc
    config = RunConfig.model_validate(payload)
    return _resolve_project_paths(config, config_path)


def _load_dotenv(config_path: Path) -> None:
    env_path = config_path.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _resolve_project_paths(config: RunConfig, config_path: Path) -> RunConfig:
    workspace_dir = Path(config.workspace_dir)
    if not workspace_dir.is_absolute():
        workspace_dir = (config_path.parent / workspace_dir).resolve()
    return config.model_copy(
        update={
            "workspace_dir": str(workspace_dir),
            "logs_dir": str(_resolve_path(Path(config.logs_dir), workspace_dir)),
            "state_dir": str(_resolve_path(Path(config.state_dir), workspace_dir)),
        }
    )


def _resolve_path(path: Path, base_dir: Path) -> Path:
    resolved = path if path.is_absolute() else base_dir / path
    return resolved.resolve()


async def _load_pipeline(
    state_dir: Path,
) -> tuple[PipelineState, list[HistoryEntry]]:
    store = FileSystemStateStore(state_dir)
    state = await store.load_state()
    history = await store.load_history()
    return state or PipelineState(), history


def _build_status_result(
    state: PipelineState, history: list[HistoryEntry]
) -> PipelineStatusResult:
    entries: list[PhaseStatusEntry] = []
    for phase in PIPELINE_PHASE_ORDER:
        snapshot = state.snapshot(phase)
        entries.append(
            PhaseStatusEntry(
                phase=phase,
                status=state.status(phase),
                revision=None if snapshot is None else snapshot.revision,
                artifact_count=0 if snapshot is None else len(snapshot.artifacts),
                failure_count=0 if snapshot is None else len(snapshot.failures),
            )
        )
    return PipelineStatusResult(
        version=state.version, phases=entries, history_entries=len(history)
    )


def _load_names(path: Path) -> list[str]:
    try:
        payload = orjson.loads(path.read_bytes())
    except OSError as exc:
        raise _ConfigError(f"Failed to read names: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path.name}: {exc}") from exc
    if isinstance(payload, dict):
        return [str(key) for key in payload]
    if isinstance(payload, list) and all(isinstance(item, str) for item in payload):
        return list(payload)
    raise ValueError("Names file must hold a list of strings or a JSON object")


_STATUS_STYLES = {
    PhaseStatus.NONE: "dim",
    PhaseStatus.UP_TO_DATE: "green",
    PhaseStatus.OUT_OF_DATE: "yellow",
}


def _render_status(result: PipelineStatusResult, lines: list[str]) -> None:
    table = Table(title="Phases", show_lines=False)
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Revision", justify="right")
    table.add_column("Artifacts", justify="right")
    table.add_column("Failures", justify="right")
    for entry in result.phases:
        phase_status = PhaseStatus(entry.status)
        style = _STATUS_STYLES[phase_status]
        table.add_row(
            PhaseName(entry.phase).value,
            f"[{style}]{phase_status.value.replace('_', '-')}[/{style}]",
            "n/a" if entry.revision is None else str(entry.revision),
            str(entry.artifact_count),
            str(entry.failure_count),
        )
    header = Table.grid(padding=(0, 1))
    header.add_column(justify="right", style="bold")
    header.add_column()
    header.add_row("State Version", str(result.version))
    header.add_row("History Entries", str(result.history_entries))
    rprint(Panel(Group(header, table), title="backforge status", expand=True))
    for line in lines:
        rprint(line)


def _render_naming(result: NamingCheckResult) -> None:
    if not result.issues:
        rprint(f"[green]No duplicate names[/green] ({result.checked} checked)")
        return
    table = Table(title="Duplicate names")
    table.add_column("Name")
    table.add_column("Canonical")
    table.add_column("Message")
    for issue in result.issues:
        table.add_row(issue.name, issue.canonical, issue.message)
    rprint(table)


def _render_error(error: ErrorResponse, *, json_output: bool) -> None:
    if json_output:
        response: ApiResponse[None] = _error_response(error)
        print(response.model_dump_json())
        return
    rprint(f"[red]Error:[/red] {error.message}")


def _error_response(error: ErrorResponse) -> ApiResponse[ResponseT]:
    return ApiResponse(
        data=None,
        error=error,
        meta=MetaInfo(timestamp=_now_timestamp()),
    )


def _error_from_exception(exc: Exception) -> ErrorResponse:
    if isinstance(exc, _DOMAIN_ERRORS):
        return exc.info.to_error_response()
    if isinstance(exc, ValidationError):
        message = "Config validation failed"
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = first.get("loc", [])
            label = ".".join(str(part) for part in loc) if loc else ""
            detail = first.get("msg", "")
            if label and detail:
                message = f"Config validation failed: {label} - {detail}"
            elif detail:
                message = f"Config validation failed: {detail}"
        return ErrorResponse(code="validation_error", message=message, details=None)
    if isinstance(exc, _ConfigError):
        return ErrorResponse(code="config_error", message=str(exc), details=None)
    if isinstance(exc, ValueError):
        return ErrorResponse(code="validation_error", message=str(exc), details=None)
    return ErrorResponse(code="runtime_error", message=str(exc), details=None)


def _exit_code_for(exc: Exception, error: ErrorResponse) -> ExitCode:
    domain: str | None = None
    if isinstance(exc, _DOMAIN_ERRORS):
        domain = DOMAIN_PREFIXES.get(type(exc.info.code).__name__)
    return resolve_exit_code(error.code, domain=domain)


if __name__ == "__main__":
    app()
