"""Prompt construction utilities."""

from __future__ import annotations

from textwrap import dedent
from typing import Optional

from ..llm.base import Observation
from .actions import describe_actions


class PromptBuilder:
    """Build the system prompt and the per-step observation text."""

    def __init__(self, skill_summary: str = "") -> None:
        self._skill_summary = skill_summary

    def system_prompt(self, skill_context: Optional[str] = None) -> str:
        actions = describe_actions()
        prompt = dedent(
            """
            You are a conversational QA testing agent controlling a live web browser.

            You are chatting with a developer who guides your testing. You maintain browser state across messages.

            Your job:
            1. Look at the screenshot and DOM to understand the current page state.
            2. Decide the SINGLE next action based on the conversation and user's latest instruction.
            3. Respond with ONLY a JSON object (no markdown, no explanation outside JSON).

            Actions:
            {actions}

            Rules:
            - Use x,y pixel coordinates from the DOM snapshot or screenshot.
            - One action per response. Target element centers.
            - Use "ask_human" when you need clarification or encounter an unexpected state.
            - Use "navigate" to go to a new URL.
            - Generate realistic test data (dummy emails, names) when needed.
            - "done" when the user's request is fully accomplished.
            - Use "use_skill" when a situation matches an available skill's description.
                - If the skill is ALREADY ACTIVE (check context), DO NOT call "use_skill" again for it. Execute the NEXT step in the skill instructions.
                - ALWAYS prefer using a skill over manual actions if a relevant skill exists.
            - Use "type_secret" only for non-account secrets from the environment. Do NOT use it for login username/password.
            - For login credentials, ALWAYS use "type_test_account_secret" with field="username" or field="password". Never output raw credential values.
            - Use "run_script" to execute a skill's script. args must match the script definition.
            """
        ).strip().format(actions=actions)
        if self._skill_summary:
            prompt += f"\n\n{self._skill_summary}"
        if skill_context:
            prompt += f"\n\n## Active Skill Instructions\n{skill_context}"
        return prompt

    def intent_prompt(self) -> str:
        prompt = dedent(
            """
            You are a strict Intent Classifier for a QA Agent.
            Your job is to analyze the user's request and match it to an available skill, OR refuse it if it violates safety rules/negative triggers, OR let the general agent handle it.

            {skills}

            Output JSON ONLY:
            {{
              "action": "use_skill" | "proceed" | "refuse",
              "skill_name": string (optional, if action is use_skill),
              "reasoning": string
            }}

            Rules:
            1. If the request matches a skill's description AND trigger conditions, return "use_skill".
            2. If the request matches a skill's NEGATIVE triggers, return "refuse" with a clear reason.
            3. If the request is a high-level workflow (e.g., "Log out", "Sign up", "Purchase", "Cancel subscription") and NO skill matches, return "refuse" stating that no skill exists for this workflow.
            4. ONLY return "proceed" if the request is a low-level, explicit browser action (e.g., "click the button", "scroll down", "navigate to google.com", "type hello").
            5. If the request is unsafe, illegal, or completely out of scope, return "refuse".
            6. Login requests that describe normal username/email + password authentication should map to "standard-login".
            7. Do NOT map to "standard-login" when login explicitly uses OAuth/SSO/provider auth (Google/GitHub/Facebook/Apple/Microsoft/passkey/magic link) or financial authorization.
            """
        ).strip()
        return prompt.format(skills=self._skill_summary or "No skills are available.")

    @staticmethod
    def observation_text(observation: Observation) -> str:
        sections: list[str] = []
        if observation.dom:
            sections.append(f"## Interactive Elements\n{observation.dom}")
        elif not observation.screenshot_base64:
            sections.append(
                "## System\nNo active browser session. To start testing, "
                "you MUST use the 'navigate' action with a URL."
            )
        if observation.console_errors:
            sections.append("## Console Errors\n" + "\n".join(observation.console_errors))
        sections.append("Decide the next action. Respond with ONLY JSON.")
        return "\n\n".join(sections)
