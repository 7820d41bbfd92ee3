"""
CLI entry point for Tollgate.

This module provides the Typer-based command-line interface for Tollgate.

Commands:
    scan        Scan files for secrets
    redact      Print a file with every secret redacted
    check-path  Check a path for traversal, escapes and denylisted names
    evaluate    Evaluate a proposed operation against the policy rules
    rules       List the registered policy rules
    run         Run a Python fragment in the sandbox

Architecture Note:
    The CLI only parses arguments and renders results. Every decision is made
    by the library (GuardianGate, PolicyEngine, Sandbox), configured from an
    optional YAML file via tollgate.config.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tollgate import __version__
from tollgate.config import SecurityConfig, load_config
from tollgate.errors import ConfigError
from tollgate.guardian import GuardianGate
from tollgate.log import configure_logging
from tollgate.sandbox import SANDBOX_PROFILES, create_sandbox
from tollgate.schema import ApprovalMode, Decision, Operation, PolicyResult, SandboxResult

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="tollgate",
    help="Scan, judge and sandbox the operations of a coding agent.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

# Directories never descended into by `scan`
SKIP_DIRS = frozenset({".git", "node_modules", ".venv", "__pycache__", "dist", ".tollgate"})

# `evaluate` exit codes
EXIT_ALLOWED = 0
EXIT_BLOCKED = 1
EXIT_NEEDS_APPROVAL = 2

_DECISION_STYLES = {
    Decision.ALLOW: "green",
    Decision.WARN: "yellow",
    Decision.NEEDS_APPROVAL: "magenta",
    Decision.BLOCK: "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]tollgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """
    Tollgate - security gate for agent operations.

    Scan content for secrets, check paths, evaluate proposed operations
    against policy rules and run untrusted fragments in a sandbox.
    """
    if verbose:
        configure_logging(logging.DEBUG)


# =============================================================================
# Helpers
# =============================================================================


def _load(config_path: Path | None, json_output: bool) -> SecurityConfig:
    """Load the config file, or the defaults when no path is given."""
    if config_path is None:
        return SecurityConfig()
    try:
        return load_config(config_path)
    except ConfigError as e:
        if json_output:
            print(json.dumps({"error": True, **e.to_dict()}, indent=2, default=str))
        else:
            console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _iter_files(root: Path):
    """Yield the files under root (or root itself), skipping SKIP_DIRS."""
    if root.is_file():
        yield root
        return
    for path in sorted(root.rglob("*")):
        if any(part in SKIP_DIRS for part in path.relative_to(root).parts):
            continue
        if path.is_file():
            yield path


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        logger.debug("Skipping binary file %s", path)
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
    return None


def _policy_result_dict(result: PolicyResult) -> dict[str, Any]:
    return {
        "decision": result.decision.value,
        "requires_approval": result.requires_approval,
        "blocked": result.blocked,
        "warnings": result.warnings,
        "matched_rules": [
            {
                "id": m.rule.id,
                "name": m.rule.name,
                "action": m.rule.action.value,
                "priority": m.rule.priority,
                "reason": m.reason,
            }
            for m in result.matched_rules
        ],
    }


# =============================================================================
# Guardian commands
# =============================================================================


@app.command()
def scan(
    path: Annotated[
        Path,
        typer.Argument(help="File or directory to scan.", exists=True, readable=True, resolve_path=True),
    ],
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Tollgate YAML config (custom secret patterns)."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Scan files for secrets.

    Exits 1 when any secret is found. Values are always shown redacted.

    Example:
        $ tollgate scan src/
    """
    gate = _load(config_path, json_output).build_guardian()

    findings: list[dict[str, Any]] = []
    files_scanned = 0
    for file in _iter_files(path):
        content = _read_text(file)
        if content is None:
            continue
        files_scanned += 1
        for secret in gate.scan_secrets(content).secrets:
            findings.append({
                "file": str(file),
                "line": secret.line,
                "type": secret.type,
                "redacted": secret.redacted,
            })

    if json_output:
        print(json.dumps({"files_scanned": files_scanned, "findings": findings}, indent=2))
    elif not findings:
        console.print(f"[green]✓[/green] No secrets found in {files_scanned} file(s)")
    else:
        table = Table(show_header=True, header_style="bold")
        table.add_column("File", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Type", style="yellow")
        table.add_column("Value")
        for finding in findings:
            table.add_row(finding["file"], str(finding["line"]), finding["type"], finding["redacted"])
        console.print(table)
        console.print(f"[red]✗[/red] {len(findings)} secret(s) found in {files_scanned} file(s)")

    if findings:
        raise typer.Exit(code=1)


@app.command()
def redact(
    file: Annotated[
        Path,
        typer.Argument(help="File to redact.", exists=True, dir_okay=False, readable=True, resolve_path=True),
    ],
) -> None:
    """Print a file with every secret redacted."""
    content = _read_text(file)
    if content is None:
        console.print(f"[red]Cannot read {file} as text[/red]")
        raise typer.Exit(code=1)
    typer.echo(GuardianGate().redact_content(content), nl=False)


@app.command("check-path")
def check_path(
    path: Annotated[str, typer.Argument(help="Path as the agent would pass it.")],
    cwd: Annotated[
        Optional[Path],
        typer.Option("--cwd", help="Working directory the agent is confined to. Defaults to the current one."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """Check a path for traversal, escapes and denylisted names. Exits 1 when unsafe."""
    working_directory = str(cwd or Path.cwd())
    result = GuardianGate().scan_path(path, working_directory)

    if json_output:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    elif result.safe:
        console.print(f"[green]✓[/green] {path} is safe")
    else:
        console.print(f"[red]✗[/red] {path} is unsafe")
        for issue in result.issues:
            console.print(f"  [yellow]{issue.type.value}[/yellow]: {escape(issue.message)}")

    if not result.safe:
        raise typer.Exit(code=1)


# =============================================================================
# Policy commands
# =============================================================================


@app.command()
def evaluate(
    operation: Annotated[
        Operation,
        typer.Option("--operation", "-o", help="Operation being proposed."),
    ],
    path: Annotated[
        Optional[str],
        typer.Option("--path", "-p", help="Target path for read/write/delete."),
    ] = None,
    command: Annotated[
        Optional[str],
        typer.Option("--command", help="Command line for exec."),
    ] = None,
    mode: Annotated[
        Optional[ApprovalMode],
        typer.Option("--mode", "-m", help="Approval mode. Defaults to the config's mode."),
    ] = None,
    cwd: Annotated[
        Optional[str],
        typer.Option("--cwd", help="Working directory. Defaults to the config's, then the current one."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Tollgate YAML config."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Evaluate a proposed operation against the policy rules.

    Exit codes: 0 allow or warn, 2 needs approval, 1 block.

    Example:
        $ tollgate evaluate --operation exec --command "git status" --mode fast
    """
    config = _load(config_path, json_output)
    if cwd is not None:
        config = config.model_copy(update={"working_directory": cwd})
    elif config_path is None:
        config = config.model_copy(update={"working_directory": str(Path.cwd())})

    engine = config.build_engine()
    context = config.make_context(operation, path=path, command=command, approval_mode=mode)
    result = engine.evaluate(context)

    if json_output:
        print(json.dumps(_policy_result_dict(result), indent=2))
    else:
        style = _DECISION_STYLES[result.decision]
        console.print(f"Decision: [bold {style}]{result.decision.value}[/bold {style}]")
        if result.matched_rules:
            table = Table(show_header=True, header_style="bold")
            table.add_column("Rule", style="cyan")
            table.add_column("Action", width=15)
            table.add_column("Priority", justify="right")
            table.add_column("Reason")
            for match in result.matched_rules:
                action_style = _DECISION_STYLES[match.rule.action]
                table.add_row(
                    match.rule.id,
                    f"[{action_style}]{match.rule.action.value}[/{action_style}]",
                    str(match.rule.priority),
                    match.reason,
                )
            console.print(table)
        for warning in result.warnings:
            console.print(f"[yellow]warning:[/yellow] {escape(warning)}")

    if result.blocked:
        raise typer.Exit(code=EXIT_BLOCKED)
    if result.requires_approval:
        raise typer.Exit(code=EXIT_NEEDS_APPROVAL)
    raise typer.Exit(code=EXIT_ALLOWED)


@app.command()
def rules(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Tollgate YAML config."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """List the registered policy rules, highest priority first."""
    engine = _load(config_path, json_output).build_engine()
    ordered = sorted(engine.get_rules(), key=lambda r: r.priority, reverse=True)

    if json_output:
        print(json.dumps(
            [r.model_dump(mode="json", exclude={"condition"}) for r in ordered],
            indent=2,
        ))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Priority", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Action", width=15)
    table.add_column("Target")
    table.add_column("Description")
    for rule in ordered:
        style = _DECISION_STYLES[rule.action]
        table.add_row(
            str(rule.priority),
            rule.id,
            f"[{style}]{rule.action.value}[/{style}]",
            rule.target.value,
            rule.description,
        )
    console.print(table)


# =============================================================================
# Sandbox commands
# =============================================================================


def _display_sandbox_result(result: SandboxResult) -> None:
    if result.success:
        console.print(f"[green]✓[/green] {escape(repr(result.result))}")
    else:
        console.print(f"[red]✗[/red] [bold]{result.error_type.value}[/bold]: {escape(result.error or '')}")
    details = f"{result.execution_time_ms:.1f}ms"
    if result.memory_used_bytes is not None:
        details += f" | peak memory {result.memory_used_bytes // 1024} KiB"
    console.print(f"[dim]{details}[/dim]")


@app.command()
def run(
    code: Annotated[str, typer.Argument(help="Python fragment; a trailing expression is the result.")],
    profile: Annotated[
        str,
        typer.Option("--profile", help=f"Sandbox profile: {', '.join(SANDBOX_PROFILES)}."),
    ] = "standard",
    timeout_ms: Annotated[
        Optional[int],
        typer.Option("--timeout-ms", help="Override the profile's timeout.", min=1),
    ] = None,
    use_async: Annotated[
        bool,
        typer.Option("--async", help="Allow top-level await (profile must allow async)."),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Run a Python fragment in the sandbox. Exits 1 when the fragment fails.

    Example:
        $ tollgate run "sum(range(10))" --profile minimal
    """
    if profile not in SANDBOX_PROFILES:
        console.print(f"[red]Unknown profile {profile!r}; expected one of {', '.join(SANDBOX_PROFILES)}[/red]")
        raise typer.Exit(code=1)

    overrides = {"timeout_ms": timeout_ms} if timeout_ms is not None else {}
    sandbox = create_sandbox(profile, **overrides)
    result = sandbox.execute_async(code) if use_async else sandbox.execute(code)

    if json_output:
        print(json.dumps(result.model_dump(), indent=2, default=repr))
    else:
        _display_sandbox_result(result)

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
