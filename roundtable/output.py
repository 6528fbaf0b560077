"""Rich console rendering of a live debate, plus markdown / JSON export."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from roundtable.models import Agent, DebatePlan, DebateTranscript, EventKind, Message, MessageEvent

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _turn_title(message: Message) -> str:
    if message.is_summary:
        return f"[bold green]Synthesis[/bold green] by {escape(message.agent_name or '')}"
    title = f"[bold]{escape(message.agent_name or '')}[/bold]"
    if message.stance:
        title += f" for [cyan]{escape(message.stance)}[/cyan]"
    if message.round:
        title += f" [dim](round {message.round})[/dim]"
    return title


def _footer(message: Message) -> str:
    parts = []
    if message.tokens:
        parts.append(f"{message.tokens.total} tokens")
    if message.attempts > 1:
        parts.append(f"{message.attempts} attempts")
    return " | ".join(parts)


class StreamPrinter:
    """on_event handler that writes turns to the console as they stream."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console

    def __call__(self, event: MessageEvent) -> None:
        message = event.message
        if event.kind is EventKind.CREATED:
            self._console.print()
            self._console.print(Rule(_turn_title(message), align="left"))
        elif event.kind is EventKind.APPENDED:
            self._console.print(event.delta, end="", markup=False, highlight=False)
        elif event.kind is EventKind.RESET:
            self._console.print("\n[yellow]-- retrying turn --[/yellow]")
        elif event.kind is EventKind.FINALIZED:
            self._console.print()
            footer = _footer(message)
            if footer:
                self._console.print(Text(footer, style="dim"))


def print_plan(plan: DebatePlan, agents: list[Agent]) -> None:
    names = {a.id: a.name for a in agents}
    console.print(Rule("[bold cyan]Debate Plan[/bold cyan]"))
    console.print(Text(f"Options: {' vs '.join(plan.options)} | Mode: {plan.mode} | Type: {plan.question_type}", style="dim"))
    for i, step in enumerate(plan.steps, start=1):
        stance = f" -> {escape(step.target_position)}" if step.target_position else ""
        console.print(f"  {i}. [bold]{escape(names.get(step.agent_id, step.agent_id))}[/bold] "
                      f"[dim]{step.turn_kind.value}, round {step.round}[/dim]{stance}")


def print_transcript(transcript: DebateTranscript) -> None:
    """Print the finalized synthesis (or the last turn) with run metadata."""
    console.print(Rule(f"[bold green]Debate {transcript.status.value.lower()}[/bold green]"))
    console.print(
        Text(
            f"Turns: {len(transcript.messages)}/{len(transcript.plan.steps)} | "
            f"Skipped: {len(transcript.skipped_steps)} | "
            f"Duration: {transcript.total_duration_sec:.1f}s",
            style="dim",
        )
    )
    summary = next((m for m in transcript.messages if m.is_summary), None)
    if summary is not None:
        console.print(Panel(Markdown(summary.content), title="Synthesis", border_style="green"))
    elif transcript.interrupted is not None:
        console.print(Text("Debate stopped before the synthesis.", style="yellow"))


def _default_json(value):
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def transcript_to_dict(transcript: DebateTranscript) -> dict:
    return {
        "topic": transcript.topic,
        "status": transcript.status.value,
        "options": transcript.plan.options,
        "mode": transcript.plan.mode,
        "plan": [asdict(s) for s in transcript.plan.steps],
        "messages": [asdict(m) for m in transcript.messages],
        "interrupted": asdict(transcript.interrupted) if transcript.interrupted else None,
        "skipped_steps": transcript.skipped_steps,
        "total_duration_sec": transcript.total_duration_sec,
    }


def _target_path(transcript: DebateTranscript, output_dir: Path, suffix: str, slug_override: str | None) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(transcript.topic)
    return output_dir / f"{timestamp}_{slug}{suffix}"


def save_json(transcript: DebateTranscript, output_dir: Path, slug_override: str | None = None) -> Path:
    filepath = _target_path(transcript, output_dir, ".json", slug_override)
    filepath.write_text(
        json.dumps(transcript_to_dict(transcript), indent=2, default=_default_json, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Transcript saved to: %s", filepath)
    return filepath


def save_markdown(transcript: DebateTranscript, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the debate transcript as a markdown file.

    Args:
        transcript: The finished (or cancelled) debate.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic.

    Returns:
        Path to the saved file.
    """
    filepath = _target_path(transcript, output_dir, ".md", slug_override)

    lines: list[str] = [
        f"# Debate: {transcript.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Options:** {' vs '.join(transcript.plan.options)}",
        f"**Mode:** {transcript.plan.mode}",
        f"**Status:** {transcript.status.value}",
        f"**Turns:** {len(transcript.messages)}/{len(transcript.plan.steps)}",
        f"**Duration:** {transcript.total_duration_sec:.1f}s",
        "",
        "---",
        "",
    ]

    for msg in transcript.messages:
        if msg.is_summary:
            lines.append(f"## Synthesis (by {msg.agent_name})")
        else:
            phase = f", {msg.phase.value.title()}" if msg.phase else ""
            lines.append(f"## Round {msg.round}{phase}: {msg.agent_name}")
            if msg.stance:
                lines.append(f"*Arguing for: {msg.stance}*")
        lines.append("")
        lines.append(msg.content)
        lines.append("")
        footer = _footer(msg)
        if footer:
            lines.append(f"*{footer}*")
            lines.append("")

    if transcript.interrupted is not None:
        lines += [
            f"## Interrupted: {transcript.interrupted.agent_name}",
            "",
            transcript.interrupted.content or "*(no content)*",
            "",
        ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
