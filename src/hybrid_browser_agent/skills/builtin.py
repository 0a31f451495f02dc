"""Skills that ship with the agent."""

from __future__ import annotations

import ast
import operator
from textwrap import dedent
from typing import Any, Callable

from ..credentials import AccountStore
from .registry import SkillDefinition, SkillValidationResult

STANDARD_LOGIN = "standard-login"
STANDARD_MATH = "standard-math"

_LOGIN_INSTRUCTIONS = dedent(
    """
    # Standard Login

    Log in with the test account selected for this session.

    1. Find the username or email input in the Interactive Elements list.
    2. Use `type_test_account_secret` with `field="username"` at that input's coordinates.
    3. Find the password input.
    4. Use `type_test_account_secret` with `field="password"` at that input's coordinates.
    5. Click the submit button ("Log In", "Sign In" or similar).
    6. Confirm the page changed (dashboard, avatar, logout link). Then reply with `done`.

    Never type raw credentials with `type` and never ask the user for them.
    If the login form shows an error, use `ask_human` with the exact error text.
    """
).strip()

_MATH_INSTRUCTIONS = dedent(
    """
    # Standard Math

    Evaluate arithmetic instead of computing it yourself.

    Use `run_script` with `skill_name="standard-math"`, `script="calculate"` and
    `args={"expression": "<expression>"}`. Supported operators: + - * / // % ** and
    parentheses. Read the `[Script Result]` entry for the value, then continue.
    """
).strip()

_BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
_MAX_EXPONENT = 1000
_MAX_BASE = 10**6


def evaluate_expression(expression: str) -> float | int:
    """Evaluate a plain arithmetic expression without ``eval``."""

    tree = ast.parse(expression, mode="eval")
    return _evaluate(tree.body)


def _evaluate(node: ast.AST) -> float | int:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(
        node.value, bool
    ):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and (abs(right) > _MAX_EXPONENT or abs(left) > _MAX_BASE):
            raise ValueError("Power operands too large")
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def calculate(args: dict[str, Any]) -> dict[str, Any]:
    expression = args.get("expression")
    if not expression:
        raise ValueError("Missing 'expression' argument")
    return {"result": evaluate_expression(str(expression))}


def login_validator(accounts: AccountStore) -> Callable[[], SkillValidationResult]:
    def validate() -> SkillValidationResult:
        if accounts.count() < 1:
            return SkillValidationResult(
                valid=False,
                error="No test accounts found. Add a test account before using this skill.",
            )
        return SkillValidationResult(valid=True)

    return validate


def builtin_skills(accounts: AccountStore) -> list[SkillDefinition]:
    return [
        SkillDefinition(
            name=STANDARD_LOGIN,
            description=(
                "Log in to a site with a username/email and password form using the "
                "selected test account. Not for OAuth, SSO or passkey logins."
            ),
            instructions=_LOGIN_INSTRUCTIONS,
            validator=login_validator(accounts),
        ),
        SkillDefinition(
            name=STANDARD_MATH,
            description="Evaluate arithmetic expressions precisely with the calculate script.",
            instructions=_MATH_INSTRUCTIONS,
            scripts={"calculate": calculate},
        ),
    ]
