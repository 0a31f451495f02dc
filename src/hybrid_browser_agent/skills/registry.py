"""Registered skills: instructions, tripwire validators and scripts."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

LOGGER = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"


@dataclass
class SkillValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass
class SkillScriptResult:
    output: Any = None
    error: Optional[str] = None


Validator = Callable[[], Any]
Script = Callable[[dict[str, Any]], Any]


@dataclass
class SkillDefinition:
    """A capability the agent can load by name."""

    name: str
    description: str
    instructions: str
    validator: Optional[Validator] = None
    scripts: dict[str, Script] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into YAML frontmatter and body."""

    if not text.startswith("---"):
        return {}, text
    parts = text.split("---", 2)
    if len(parts) < 3:
        return {}, text
    attributes = yaml.safe_load(parts[1]) or {}
    if not isinstance(attributes, dict):
        raise ValueError("Frontmatter must be a mapping")
    return attributes, parts[2].lstrip("\n")


class SkillRegistry:
    """Table of skills resolved at startup."""

    def __init__(self, skills: Optional[list[SkillDefinition]] = None) -> None:
        self._skills: dict[str, SkillDefinition] = {}
        for skill in skills or []:
            self.register(skill)

    def register(self, skill: SkillDefinition) -> None:
        self._skills[skill.name] = skill

    def get(self, name: str) -> Optional[SkillDefinition]:
        return self._skills.get(name)

    def names(self) -> list[str]:
        return sorted(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def __len__(self) -> int:
        return len(self._skills)

    def load_directory(self, directory: Path) -> int:
        """Merge ``<dir>/<name>/SKILL.md`` bundles into the registry.

        A bundle whose frontmatter ``name`` differs from its directory name is
        skipped. Bundles named like an existing skill replace its description
        and instructions but keep its validator and scripts.
        """

        if not directory.is_dir():
            LOGGER.warning("Skills directory %s does not exist", directory)
            return 0
        loaded = 0
        for entry in sorted(directory.iterdir()):
            skill_path = entry / SKILL_FILENAME
            if not entry.is_dir() or not skill_path.is_file():
                continue
            try:
                attributes, body = split_frontmatter(skill_path.read_text(encoding="utf-8"))
            except (OSError, ValueError, yaml.YAMLError) as exc:
                LOGGER.warning("Failed to parse %s for skill %s: %s", SKILL_FILENAME, entry.name, exc)
                continue
            name = attributes.get("name")
            description = attributes.get("description")
            if not name or not description:
                LOGGER.warning("Skipping %s: missing name or description in frontmatter", entry.name)
                continue
            if name != entry.name:
                LOGGER.warning(
                    "Skipping %s: frontmatter name '%s' does not match directory name",
                    entry.name,
                    name,
                )
                continue
            existing = self._skills.get(name)
            metadata = {k: v for k, v in attributes.items() if k not in {"name", "description"}}
            self.register(
                SkillDefinition(
                    name=name,
                    description=description,
                    instructions=body,
                    validator=existing.validator if existing else None,
                    scripts=dict(existing.scripts) if existing else {},
                    metadata=metadata,
                )
            )
            loaded += 1
        LOGGER.info("Loaded %d skill bundle(s) from %s", loaded, directory)
        return loaded

    def format_summary(self) -> str:
        """Describe the available skills for the system prompt."""

        if not self._skills:
            return ""
        listing = [
            {"name": skill.name, "description": skill.description}
            for skill in self._skills.values()
        ]
        return "\n".join(
            [
                "## Available Skills",
                "You can invoke these skills when the situation matches their description and trigger conditions.",
                "Do NOT use a skill if your task matches one of its negative triggers.",
                "To use a skill, include a `use_skill` action with the skill name.",
                "",
                "```json",
                json.dumps(listing, indent=2),
                "```",
                "",
                "If no skill matches the request (or if the request hits a negative trigger), "
                "you must Refuse or Ask Human.",
            ]
        )

    def load_skill_instructions(self, name: str) -> Optional[str]:
        skill = self._skills.get(name)
        if skill is None:
            LOGGER.warning("Skill not found: %s", name)
            return None
        return skill.instructions

    async def execute_skill_validation(self, name: str) -> SkillValidationResult:
        """Run the skill's tripwire check. Skills without one always pass."""

        skill = self._skills.get(name)
        if skill is None or skill.validator is None:
            return SkillValidationResult(valid=True)
        LOGGER.info("Validating %s prerequisites", name)
        try:
            result = skill.validator()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            LOGGER.exception("Validation for skill %s raised", name)
            return SkillValidationResult(
                valid=False,
                error="Validation script threw an unexpected error.",
            )
        if isinstance(result, bool):
            return SkillValidationResult(
                valid=result,
                error=None if result else "Validation failed silently",
            )
        return result

    async def execute_skill_script(
        self,
        name: str,
        script: str,
        args: dict[str, Any],
    ) -> SkillScriptResult:
        skill = self._skills.get(name)
        script_name = Path(script).stem
        handler = skill.scripts.get(script_name) if skill else None
        if handler is None:
            return SkillScriptResult(error=f"Script not found: {script}")
        try:
            output = handler(dict(args))
            if inspect.isawaitable(output):
                output = await output
        except Exception as exc:
            LOGGER.warning("Script %s/%s failed: %s", name, script, exc)
            return SkillScriptResult(error=str(exc))
        return SkillScriptResult(output=output)
