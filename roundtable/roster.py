"""Agent roster and question files: markdown with YAML frontmatter."""

import logging
from pathlib import Path

import frontmatter

from roundtable.models import Agent, Verbosity

logger = logging.getLogger(__name__)


class RosterError(ValueError):
    """Raised when an agent file is malformed."""


def parse_agent(file_path: Path) -> Agent:
    """Build an Agent from a markdown file; the body is the persona.

    The id defaults to the file stem and the name to the id.
    """
    post = frontmatter.load(str(file_path))
    meta = dict(post.metadata)
    agent_id = str(meta.get("id") or file_path.stem)
    try:
        verbosity = Verbosity(str(meta.get("verbosity", Verbosity.BALANCED.value)).lower())
        temperature = float(meta.get("temperature", 0.7))
    except ValueError as exc:
        raise RosterError(f"{file_path.name}: {exc}") from exc
    if not 0.0 <= temperature <= 2.0:
        raise RosterError(f"{file_path.name}: temperature {temperature} outside 0-2")
    return Agent(
        id=agent_id,
        name=str(meta.get("name") or agent_id),
        persona=post.content.strip(),
        model=str(meta.get("model") or ""),
        temperature=temperature,
        verbosity=verbosity,
        avatar=meta.get("avatar"),
    )


def load_roster(agents_dir: Path) -> list[Agent]:
    """Load every agent file in ``agents_dir``, sorted by file name.

    Args:
        agents_dir: Directory of ``*.md`` agent files.

    Raises:
        FileNotFoundError: If the directory does not exist.
        RosterError: On malformed files or duplicate ids.
    """
    if not agents_dir.is_dir():
        raise FileNotFoundError(f"Agents directory not found: {agents_dir}")
    agents: list[Agent] = []
    seen: set[str] = set()
    for path in sorted(agents_dir.glob("*.md")):
        agent = parse_agent(path)
        if agent.id in seen:
            raise RosterError(f"Duplicate agent id '{agent.id}' in {path.name}")
        seen.add(agent.id)
        agents.append(agent)

    logger.info("Loaded %d agent(s) from %s", len(agents), agents_dir)
    return agents


def parse_question_file(file_path: Path) -> tuple[str, dict]:
    """Parse a question file with optional frontmatter.

    Returns:
        (question, metadata) where metadata may carry ``mode`` (str) and
        ``agents`` (list of ids). If no frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)
