"""Tool-icon rules: display hints for tool-call nodes.

Rules are matched in order and the first match wins. User rules from a JSON
file (``{"rules": [...]}``) come before the built-in defaults. The rule file
is read once per process and path; ``_clear_rules_cache()`` resets it for
tests.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from pydantic import BaseModel, ValidationError

from vizier.config import get_config_dir
from vizier.models import Node, SourceKind, ToolCallContent, ToolUseContent

logger = logging.getLogger(__name__)

RULES_ENV_VAR = "VIZIER_TOOL_ICONS"


class ToolIconRule(BaseModel):
    """One matching rule. Every criterion that is set must match."""

    icon: str | None = None
    icon_id: str | None = None
    tool: str | None = None
    tool_pattern: str | None = None
    input_contains: str | None = None
    input_pattern: str | None = None
    source: SourceKind | None = None


class UiHint(BaseModel):
    icon_text: str | None = None
    icon_id: str | None = None


DEFAULT_RULES = [
    ToolIconRule(tool="bash", input_pattern=r"\bgit\b", icon="🌿"),
    ToolIconRule(tool="bash", input_pattern=r"\bgrep\b", icon="🔎"),
    ToolIconRule(tool="bash", icon_id="simple-icons:gnubash", icon="🖥️"),
    ToolIconRule(tool="shell", icon_id="simple-icons:gnubash", icon="🖥️"),
    ToolIconRule(tool="git", icon_id="simple-icons:git", icon="🌿"),
    ToolIconRule(tool="github", icon_id="simple-icons:github", icon="🐙"),
    ToolIconRule(tool="python", icon_id="simple-icons:python", icon="🐍"),
    ToolIconRule(tool="read", icon="📖"),
    ToolIconRule(tool="write", icon="📝"),
    ToolIconRule(tool="edit", icon="🧵"),
    ToolIconRule(tool="patch", icon="🧩"),
    ToolIconRule(tool="file", icon="📄"),
    ToolIconRule(tool="search", icon="🔍"),
    ToolIconRule(tool="web", icon="🌐"),
    ToolIconRule(tool="http", icon="🌐"),
    ToolIconRule(tool="fetch", icon="📡"),
]

# Camel-case keys used by rule files written for other viewers
_RULE_ALIASES = {
    "iconId": "icon_id",
    "toolPattern": "tool_pattern",
    "inputContains": "input_contains",
    "inputPattern": "input_pattern",
}


def get_rules_path() -> Path:
    """Default rule file location, overridable with $VIZIER_TOOL_ICONS."""
    override = os.environ.get(RULES_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "tool-icons.json"


def normalize_tool_name(name: str) -> str:
    return name.strip().lower()


def base_tool_name(name: str) -> str:
    """Last ``/`` or ``:`` separated segment, e.g. ``mcp:github/search`` -> ``search``."""
    normalized = normalize_tool_name(name)
    segments = [s for s in re.split(r"[/:]", normalized) if s]
    return segments[-1] if segments else normalized


def read_user_rules(path: Path) -> list[ToolIconRule]:
    """Read rules from a JSON file, skipping invalid entries.

    Returns:
        The valid rules, or an empty list if the file is missing or unreadable.
    """
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load tool icon rules from %s: %s", path, e)
        return []

    raw_rules = data.get("rules") if isinstance(data, dict) else None
    if not isinstance(raw_rules, list):
        return []

    rules: list[ToolIconRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            continue
        try:
            rules.append(
                ToolIconRule.model_validate({_RULE_ALIASES.get(k, k): v for k, v in raw.items()})
            )
        except ValidationError as e:
            logger.debug("Skipping invalid tool icon rule %r: %s", raw, e)
    return rules


_rules_cache: dict[Path, list[ToolIconRule]] = {}


def load_rules(path: Path | None = None) -> list[ToolIconRule]:
    """User rules followed by the defaults, cached per path."""
    path = path or get_rules_path()
    if path not in _rules_cache:
        _rules_cache[path] = [*read_user_rules(path), *DEFAULT_RULES]
    return _rules_cache[path]


def _clear_rules_cache() -> None:
    """Clear the rules cache. Used for testing."""
    _rules_cache.clear()


def _search(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text, re.IGNORECASE) is not None
    except re.error:
        return False


def rule_matches(rule: ToolIconRule, name: str, tool_input: str, source: SourceKind | None) -> bool:
    """Check every criterion set on ``rule``; an invalid pattern never matches."""
    if rule.source is not None and rule.source != source:
        return False

    if rule.tool:
        target = normalize_tool_name(rule.tool)
        if normalize_tool_name(name) != target and base_tool_name(name) != target:
            return False

    if rule.tool_pattern and not _search(rule.tool_pattern, name):
        return False

    if rule.input_contains:
        if rule.input_contains.lower() not in tool_input.lower():
            return False

    if rule.input_pattern:
        if not tool_input or not _search(rule.input_pattern, tool_input):
            return False

    return True


def get_tool_ui(node: Node, rules: list[ToolIconRule] | None = None) -> UiHint | None:
    """Display hint for a tool node, or None for other nodes or no match."""
    content = node.node_type
    if not isinstance(content, (ToolCallContent, ToolUseContent)):
        return None

    for rule in rules if rules is not None else load_rules():
        if rule_matches(rule, content.name, content.input or "", node.source):
            return UiHint(icon_text=rule.icon, icon_id=rule.icon_id)
    return None
