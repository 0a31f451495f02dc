from hybrid_browser_agent.agent.intent import (
    IntentVerdict,
    parse_intent,
    wants_standard_login,
)


def test_refusal_is_parsed_from_fenced_output():
    decision = parse_intent(
        '```json\n{"action": "refuse", "reasoning": "No skill exists for sign up"}\n```',
        "Sign up for a new account",
    )

    assert decision.refused
    assert decision.reasoning == "No skill exists for sign up"


def test_use_skill_keeps_skill_name():
    decision = parse_intent(
        '{"action": "use_skill", "skill_name": "standard-math", "reasoning": "arithmetic"}',
        "what is 2 + 2",
    )

    assert decision.verdict is IntentVerdict.USE_SKILL
    assert decision.skill_name == "standard-math"


def test_password_login_is_normalized_to_standard_login():
    decision = parse_intent('{"action": "refuse", "reasoning": "nope"}', "Please log in as the admin")

    assert decision.verdict is IntentVerdict.USE_SKILL
    assert decision.skill_name == "standard-login"


def test_delegated_and_financial_logins_are_not_normalized():
    assert wants_standard_login("Sign in with username and password")
    assert not wants_standard_login("Login with Google")
    assert not wants_standard_login("log in to the banking portal")
    assert not wants_standard_login("scroll down")


def test_unreadable_output_proceeds():
    assert parse_intent("I think this is fine", "click the button").verdict is IntentVerdict.PROCEED
    unknown = parse_intent('{"action": "maybe"}', "click the button")
    assert unknown.verdict is IntentVerdict.PROCEED
    assert "defaulting to proceed" in unknown.reasoning


def test_missing_reasoning_is_filled():
    decision = parse_intent('{"action": "proceed"}', "scroll down")

    assert decision.verdict is IntentVerdict.PROCEED
    assert decision.reasoning == "Classifier returned no reasoning."
