from pathlib import Path

import pytest

from hybrid_browser_agent.credentials import AccountCredentials, InMemoryAccountStore
from hybrid_browser_agent.skills.builtin import (
    STANDARD_LOGIN,
    STANDARD_MATH,
    builtin_skills,
    evaluate_expression,
)
from hybrid_browser_agent.skills.registry import (
    SkillDefinition,
    SkillRegistry,
    SkillValidationResult,
    split_frontmatter,
)


def _account() -> AccountCredentials:
    return AccountCredentials(
        id="acc-1",
        label="Primary",
        account_key="primary",
        username="alice",
        password="wonderland",
    )


def _write_skill(root: Path, directory: str, frontmatter_name: str, body: str) -> None:
    skill_dir = root / directory
    skill_dir.mkdir()
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {frontmatter_name}\ndescription: Does {directory} things\n"
        f"trigger: whenever\n---\n{body}"
    )


@pytest.mark.asyncio
async def test_login_tripwire_requires_an_account():
    store = InMemoryAccountStore()
    registry = SkillRegistry(builtin_skills(store))

    result = await registry.execute_skill_validation(STANDARD_LOGIN)

    assert not result.valid
    assert "No test accounts found" in result.error

    store.add(_account())
    assert (await registry.execute_skill_validation(STANDARD_LOGIN)).valid


@pytest.mark.asyncio
async def test_skill_without_validator_passes():
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore()))

    assert (await registry.execute_skill_validation(STANDARD_MATH)).valid
    assert (await registry.execute_skill_validation("unknown")).valid


@pytest.mark.asyncio
async def test_validator_exceptions_and_booleans():
    def boom() -> bool:
        raise RuntimeError("broken")

    registry = SkillRegistry(
        [
            SkillDefinition(name="boom", description="d", instructions="i", validator=boom),
            SkillDefinition(name="nope", description="d", instructions="i", validator=lambda: False),
        ]
    )

    assert await registry.execute_skill_validation("boom") == SkillValidationResult(
        valid=False, error="Validation script threw an unexpected error."
    )
    assert await registry.execute_skill_validation("nope") == SkillValidationResult(
        valid=False, error="Validation failed silently"
    )


@pytest.mark.asyncio
async def test_math_script_runs_calculate():
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore()))

    result = await registry.execute_skill_script(STANDARD_MATH, "calculate.js", {"expression": "(2 + 3) * 4"})

    assert result.error is None
    assert result.output == {"result": 20}


@pytest.mark.asyncio
async def test_missing_script_and_failing_script():
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore()))

    missing = await registry.execute_skill_script(STANDARD_MATH, "nothing", {})
    failing = await registry.execute_skill_script(STANDARD_MATH, "calculate", {})

    assert missing.error == "Script not found: nothing"
    assert failing.error == "Missing 'expression' argument"


def test_evaluate_expression_rejects_names():
    assert evaluate_expression("-3 ** 2") == -9
    with pytest.raises(ValueError):
        evaluate_expression("__import__('os')")
    with pytest.raises(ValueError):
        evaluate_expression("2 ** 100000")


def test_load_skill_instructions():
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore()))

    assert "type_test_account_secret" in registry.load_skill_instructions(STANDARD_LOGIN)
    assert registry.load_skill_instructions("missing") is None


def test_load_directory_checks_names(tmp_path: Path):
    _write_skill(tmp_path, "checkout", "checkout", "# Checkout\nSteps.")
    _write_skill(tmp_path, "mismatch", "other-name", "ignored")
    (tmp_path / "empty").mkdir()
    registry = SkillRegistry()

    loaded = registry.load_directory(tmp_path)

    assert loaded == 1
    assert registry.names() == ["checkout"]
    skill = registry.get("checkout")
    assert skill.instructions == "# Checkout\nSteps."
    assert skill.metadata == {"trigger": "whenever"}


def test_directory_bundle_keeps_builtin_scripts(tmp_path: Path):
    _write_skill(tmp_path, STANDARD_MATH, STANDARD_MATH, "Custom math guide")
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore([_account()])))

    registry.load_directory(tmp_path)

    skill = registry.get(STANDARD_MATH)
    assert skill.instructions == "Custom math guide"
    assert "calculate" in skill.scripts


def test_format_summary_lists_skills():
    registry = SkillRegistry(builtin_skills(InMemoryAccountStore()))

    summary = registry.format_summary()

    assert summary.startswith("## Available Skills")
    assert '"name": "standard-login"' in summary
    assert SkillRegistry().format_summary() == ""


def test_split_frontmatter_without_header():
    assert split_frontmatter("plain body") == ({}, "plain body")
