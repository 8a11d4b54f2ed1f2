"""Main CLI entry point for llmgate."""

import json
import sys
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from llmgate import __version__
from llmgate.config.exceptions import ConfigurationError
from llmgate.config.loader import GatewayConfig, load_config, setup_logging
from llmgate.constitution.exceptions import RuleDefinitionError
from llmgate.constitution.models import Domain, Mode, PolicyConfig
from llmgate.constitution.patterns import load_rule_set
from llmgate.constitution.prompts import prompt_for
from llmgate.constitution.scorer import score

# Load environment variables from .env file
load_dotenv()

console = Console()

DOMAIN_CHOICES = [d.value for d in Domain]
MODE_CHOICES = [m.value for m in Mode]


def _load(ctx: click.Context) -> GatewayConfig:
    try:
        return load_config(ctx.obj["config"])
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        ctx.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="llmgate")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "-c",
    default="config.yaml",
    help="Configuration file path",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str) -> None:
    """llmgate: OpenAI-compatible LLM gateway with a constitutional safety layer.

    Injects domain safety prompts, scores requests and replies against a
    multilingual rule set, and blocks, annotates or logs what it finds.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config

    if verbose:
        console.print(f"[green]llmgate v{__version__}[/green]")
        console.print(f"[dim]Config: {config}[/dim]")


@cli.command()
@click.option("--host", "-h", default=None, help="Bind address (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port (overrides config and PORT)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the gateway HTTP server."""
    import uvicorn

    from llmgate.api.main import create_app

    config = _load(ctx)
    api = config.api.model_copy(update={
        "host": host or config.api.host,
        "port": port or config.api.port,
    })
    config = config.model_copy(update={"api": api})
    setup_logging(config)

    policy = config.constitution
    console.print(f"[green]llmgate v{__version__}[/green] listening on {api.host}:{api.port}")
    console.print(
        f"[dim]Upstream: {config.upstream.api_url} ({config.upstream.model}) | "
        f"constitution {'enabled' if policy.enabled else 'disabled'} "
        f"[{policy.domain.value}/{policy.mode.value}][/dim]"
    )

    try:
        app = create_app(config)
    except RuleDefinitionError as e:
        console.print(f"[red]Rules error:[/red] {e.message}")
        ctx.exit(1)

    uvicorn.run(app, host=api.host, port=api.port, log_level=config.logging.level.lower())


@cli.command()
@click.argument("text")
@click.option("--domain", "-d", type=click.Choice(DOMAIN_CHOICES), default="general", help="Policy domain")
@click.option("--mode", "-m", type=click.Choice(MODE_CHOICES), default="warn", help="Policy mode")
@click.option("--rules", "-r", "rules_file", default=None, help="Extra rules YAML file")
@click.option("--json", "as_json", is_flag=True, help="Print the verdict as JSON")
def check(text: str, domain: str, mode: str, rules_file: Optional[str], as_json: bool) -> None:
    """Score TEXT against the constitution rule set."""
    policy = PolicyConfig(enabled=True, domain=domain, mode=mode)

    rules = None
    if rules_file:
        try:
            rules = load_rule_set(rules_file)
        except RuleDefinitionError as e:
            console.print(f"[red]Rules error:[/red] {e.message}")
            sys.exit(1)

    verdict = score(text, policy, rules)

    if as_json:
        click.echo(json.dumps(verdict.to_dict(), ensure_ascii=False))
        return

    verdict_style = "green" if verdict.safe else "red"
    console.print(f"[bold {verdict_style}]{'SAFE' if verdict.safe else 'UNSAFE'}[/bold {verdict_style}] "
                  f"confidence={verdict.confidence:.2f}")

    if verdict.violations:
        table = Table(title="Violations")
        table.add_column("Category", style="cyan")
        table.add_column("Severity", style="red")
        table.add_column("Rule", style="white")
        table.add_column("Matched", style="yellow")
        for violation in verdict.violations:
            table.add_row(
                violation.category.value,
                violation.severity.value,
                violation.rule_id,
                violation.matched,
            )
        console.print(table)

    if verdict.has_crisis_signal:
        console.print("[bold yellow]Crisis signal detected: crisis resources would be appended[/bold yellow]")


@cli.command()
@click.option("--domain", "-d", type=click.Choice(DOMAIN_CHOICES), default="general", help="Policy domain")
def prompt(domain: str) -> None:
    """Print the safety system prompt for a domain."""
    click.echo(prompt_for(domain))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective gateway configuration (no secrets)."""
    config = _load(ctx)
    view = config.public_view()

    console.print("[blue]llmgate Configuration[/blue]")

    for section in ("upstream", "api", "constitution"):
        table = Table(title=section.title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in view[section].items():
            table.add_row(key, str(value))
        console.print(table)

    console.print(f"[dim]Log level: {view['logging']['level']} | Rules file: {view['rules_file'] or 'built-in'}[/dim]")


def main() -> int:
    """Main entry point for the CLI."""
    try:
        cli()
        return 0
    except KeyboardInterrupt:
        console.print("\n[red]Operation cancelled by user[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
