"""
CLI interface for AI Story Gateway.

Provides command-line access to the server, the audit ledger, caller quotas
and a local one-shot generation run.
"""

import json
import logging
import sys
import time
from typing import Optional

import typer
import uvicorn
import yaml
from rich.console import Console
from rich.table import Table

from ai_story_gateway.api.app import build_pipeline, create_app
from ai_story_gateway.config.loader import GatewayConfig, load_gateway_config
from ai_story_gateway.config.logging import configure_logging
from ai_story_gateway.core.identity import AnonymousCaller, AuthenticatedCaller
from ai_story_gateway.core.pipeline import GENERATE_ENDPOINT
from ai_story_gateway.core.prompts import get_level_spec
from ai_story_gateway.core.rate_limiter import RateLimiter
from ai_story_gateway.core.request import (
    AdditionalFields,
    GenerationRequest,
    ParentContext,
    StoryLevel
)
from ai_story_gateway.storage.rate_limit_store import SqliteRateLimitStore
from ai_story_gateway.storage.repository import AuditRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LOCAL_CALLER_IP = "127.0.0.1"
LOCAL_USER_AGENT = "ai-story-gateway-cli"

CONFIG_OPTION_HELP = "Path to the gateway YAML config"


def _load_config(config_path: Optional[str]) -> GatewayConfig:
    if config_path is None:
        return GatewayConfig()
    return load_gateway_config(config_path)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level")
):
    """AI Story Gateway CLI."""
    configure_logging(getattr(logging, log_level.upper(), logging.INFO), stream=sys.stderr)
    if ctx.invoked_subcommand is None:
        console.print("AI Story Gateway - Use --help to see available commands")


@app.command()
def init(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Create the audit and rate-limit tables."""
    try:
        gateway_config = _load_config(config)
        initialize_schema(gateway_config.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {gateway_config.storage.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    forwarded_allow_ips: str = typer.Option(
        "127.0.0.1",
        "--forwarded-allow-ips",
        help="Comma-separated proxy addresses trusted to set X-Forwarded-For"
    )
):
    """Run the HTTP gateway.

    The client address used for anonymous quotas is taken from
    X-Forwarded-For only when the connection comes from a trusted proxy.
    """
    try:
        gateway_config = _load_config(config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not gateway_config.auth.jwt_secret:
        console.print("[yellow]No auth.jwt_secret configured; every caller is anonymous[/]")

    uvicorn.run(
        create_app(gateway_config),
        host=host,
        port=port,
        proxy_headers=True,
        forwarded_allow_ips=forwarded_allow_ips,
        log_config=None
    )


@app.command()
def audit(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    level: Optional[StoryLevel] = typer.Option(None, "--level", "-l", help="Only show this story level"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum records to show"),
    failures_only: bool = typer.Option(False, "--failures-only", help="Only show failed requests")
):
    """Show recent generation requests from the audit ledger."""
    try:
        gateway_config = _load_config(config)
        initialize_schema(gateway_config.storage.db_path)
        records = AuditRepository(gateway_config.storage.db_path).get_recent_records(
            story_level=level.value if level else None,
            success=False if failures_only else None,
            limit=limit
        )
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not records:
        console.print("\n[bold yellow]No audit records found[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Generation Audit")
    table.add_column("Time")
    table.add_column("Level")
    table.add_column("Caller")
    table.add_column("Result")
    table.add_column("Tokens", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("Error")

    for record in records:
        caller = record.user_id if not record.is_anonymous else f"anon {record.ip_address or '-'}"
        table.add_row(
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.story_level,
            caller,
            "[green]ok[/]" if record.success else "[red]failed[/]",
            str(record.token_count) if record.token_count is not None else "-",
            str(record.execution_time_ms),
            record.error_message or ""
        )

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    days: int = typer.Option(30, "--days", "-d", help="Number of days to include")
):
    """Summarize request volume, success rate and averages."""
    try:
        gateway_config = _load_config(config)
        initialize_schema(gateway_config.storage.db_path)
        summary = AuditRepository(gateway_config.storage.db_path).get_audit_stats(days=days)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    total = summary["total_requests"]
    successful = summary["successful_requests"]
    rate = f"{successful / total * 100:.1f}%" if total else "N/A"

    console.print(f"\n[bold]Generation requests (last {days} days)[/bold]")
    console.print("-" * 40)
    console.print(f"Total requests: {total}")
    console.print(f"Successful: {successful} ({rate})")
    console.print(f"Average prompt tokens: {summary['avg_tokens']:.1f}")
    console.print(f"Average execution time: {summary['avg_execution_ms']:.0f} ms\n")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def quota(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    ip: Optional[str] = typer.Option(None, "--ip", help="Anonymous caller IP address"),
    user: Optional[str] = typer.Option(None, "--user", help="Authenticated caller user id")
):
    """Show how many generations a caller has left in the current window."""
    if (ip is None) == (user is None):
        console.print("[red]Error:[/] pass exactly one of --ip or --user")
        sys.exit(EXIT_CODE_FAIL)

    try:
        identity = AuthenticatedCaller(user_id=user) if user is not None else AnonymousCaller(ip_address=ip)
        gateway_config = _load_config(config)
        initialize_schema(gateway_config.storage.db_path)
        store = SqliteRateLimitStore(gateway_config.storage.db_path)
        window = store.get_window(identity.rate_limit_key, GENERATE_ENDPOINT)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    policy = RateLimiter(store, gateway_config.rate_limits).policy_for(identity)
    if window is None or window.is_expired(time.time()):
        remaining = policy.max_requests
    else:
        remaining = window.remaining

    console.print(f"\n[bold]Quota for {identity.rate_limit_key}[/bold]")
    console.print("-" * 40)
    console.print(f"Policy: {policy.name} ({policy.max_requests} per {policy.describe_window()})")
    console.print(f"Remaining: {remaining}\n")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def generate(
    level: StoryLevel = typer.Argument(..., help="Story level to generate"),
    user_input: str = typer.Argument(..., metavar="INPUT", help="Free-text description"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    parent_id: Optional[str] = typer.Option(None, "--parent-id", help="Id of the parent work item"),
    parent_title: Optional[str] = typer.Option(None, "--parent-title", help="Title of the parent work item"),
    context: Optional[str] = typer.Option(None, "--context", help="Additional context for the prompt")
):
    """Run one generation locally and print the JSON response."""
    try:
        gateway_config = _load_config(config)
        pipeline = build_pipeline(gateway_config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    parent_level = get_level_spec(level).parent_level
    parent_context = None
    if parent_title and parent_level is not None:
        parent_context = ParentContext(level=parent_level, title=parent_title)

    request = GenerationRequest(
        story_level=level,
        user_input=user_input,
        parent_id=parent_id,
        parent_context=parent_context,
        additional_fields=AdditionalFields(context=context) if context else None
    )

    result = pipeline.handle(
        request,
        AnonymousCaller(ip_address=LOCAL_CALLER_IP),
        ip_address=LOCAL_CALLER_IP,
        user_agent=LOCAL_USER_AGENT
    )

    console.print_json(json.dumps(result.body))
    sys.exit(EXIT_CODE_PASS if result.success else EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
