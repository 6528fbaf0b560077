"""Click CLI: loads config and roster, runs a streamed debate, saves the transcript."""

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import load_config
from roundtable.debate import DebateServices, build_services, run_debate
from roundtable.healthcheck import HealthResult, providers_in_use, run_health_checks
from roundtable.models import Agent, DebateStatus, DebateTranscript
from roundtable.orchestrator import CancellationToken
from roundtable.output import StreamPrinter, print_plan, print_transcript, save_json, save_markdown
from roundtable.planner import PlanningError
from roundtable.preflight import TopicRejectedError
from roundtable.providers.registry import ProviderRegistry, build_registry
from roundtable.roster import RosterError, load_roster, parse_question_file

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _check_and_filter_providers(registry: ProviderRegistry, agents: list[Agent]) -> ProviderRegistry:
    """Ping the providers this debate uses and drop the ones that fail.

    Asks before continuing without a failed provider. Exits if the user
    declines or nothing passes.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, HealthResult] = asyncio.run(run_health_checks(providers_in_use(registry, agents)))

    failed_names: list[str] = []
    for name in sorted(results):
        result = results[name]
        if result.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({result.latency_sec:.1f}s)[/dim]")
        else:
            short_err = result.error.splitlines()[0][:120] if result.error else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return registry

    working = {n: p for n, p in registry.providers.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print("Agents on a failed provider will produce empty turns.")
    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    console.print()
    return ProviderRegistry(providers=working, default=registry.default, utility=registry.utility)


def _select_agents(roster: list[Agent], agent_ids: tuple[str, ...], meta: dict) -> list[Agent]:
    """CLI --agent flags win; frontmatter ``agents`` only applies when none given."""
    wanted = list(agent_ids) or [str(a) for a in meta.get("agents", [])]
    if not wanted:
        return roster
    known = {a.id for a in roster}
    unknown = [w for w in wanted if w not in known]
    if unknown:
        console.print(f"[yellow]Ignoring unknown agent id(s):[/yellow] {', '.join(unknown)}")
    return [a for a in roster if a.id in wanted]


async def _run(
    services: DebateServices,
    topic: str,
    agents: list[Agent],
    mode: str,
) -> DebateTranscript:
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported here; Ctrl-C will abort without a transcript")

    try:
        return await run_debate(
            services,
            topic,
            agents,
            mode=mode,
            cancel=cancel,
            on_event=StreamPrinter(console),
            on_plan=lambda plan: print_plan(plan, agents),
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True, dir_okay=False),
              help="Read question from .md file (frontmatter may set mode and agents)")
@click.option("--mode", type=click.Choice(["quick", "deep"]), default=None,
              help="quick: one round; deep: rebuttal rounds (default: from config)")
@click.option("--agents-dir", default=None, help="Directory of agent .md files (default: from config)")
@click.option("--agent", "agent_ids", multiple=True, help="Agent id to include (repeatable)")
@click.option("--planner", type=click.Choice(["template", "model"]), default=None,
              help="Planning strategy (default: from config)")
@click.option("--validation", type=click.Choice(["model", "rules"]), default=None,
              help="Stance/synthesis validator (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--json", "save_as_json", is_flag=True, help="Also save the transcript as JSON")
@click.option("--no-delay", is_flag=True, help="Disable the pacing delay between turns")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    mode: str | None,
    agents_dir: str | None,
    agent_ids: tuple[str, ...],
    planner: str | None,
    validation: str | None,
    output_path: str | None,
    save_as_json: bool,
    no_delay: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Roundtable -- multi-agent debate with a synthesized recommendation.

    \b
    Examples:
      roundtable "Python or JavaScript?"
      roundtable "Rent or buy in Berlin?" --mode deep --agent strategist --agent advocate
      roundtable --file question.md --planner model --json
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    meta: dict = {}
    if question_file:
        topic, meta = parse_question_file(Path(question_file))
    elif question:
        topic = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    effective_mode = mode or str(meta.get("mode", config.defaults.mode))
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    roster_dir = Path(agents_dir) if agents_dir else config.defaults.agents_dir

    try:
        agents = _select_agents(load_roster(roster_dir), agent_ids, meta)
    except (FileNotFoundError, RosterError) as exc:
        console.print(f"[bold red]Roster error:[/bold red] {exc}")
        sys.exit(1)

    try:
        registry = build_registry(config)
    except ValueError:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        registry = _check_and_filter_providers(registry, agents)

    services = build_services(
        config,
        registry=registry,
        planner=planner,
        validation=validation,
        turn_delay_sec=0.0 if no_delay else None,
    )

    console.print(f"\n[bold cyan]Roundtable[/bold cyan]: {len(agents)} agents, {effective_mode} mode")
    console.print(f"Question: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    try:
        transcript = asyncio.run(_run(services, topic, agents, effective_mode))
    except TopicRejectedError as exc:
        console.print(f"[bold red]Question rejected:[/bold red] {exc}")
        sys.exit(1)
    except PlanningError as exc:
        console.print(f"[bold red]Failed to plan debate:[/bold red] {exc}")
        sys.exit(1)

    print_transcript(transcript)
    saved = save_markdown(transcript, effective_output)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")
    if save_as_json:
        console.print(f"[dim]Saved to: {save_json(transcript, effective_output)}[/dim]")
    if transcript.status is DebateStatus.CANCELLED:
        sys.exit(130)


if __name__ == "__main__":
    main()
