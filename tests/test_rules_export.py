"""
Tests for rule export, the return stack, Distribution routing and
ruleset references.
"""

import random
from collections import Counter
from datetime import datetime, timezone

import pytest

from callflow.errors import ConfigurationError
from callflow.rules.distribution import distribution_options, solve_distribution
from callflow.rules.export import (
    RETURN_STACK_KEY,
    export_rule,
    is_message_param,
    next_rule_index,
    peek_return_stack,
    pop_return_stack,
    push_return_stack,
)
from callflow.rules.models import Rule, RuleSet
from callflow.rules.references import find_referring_rule_sets, find_referring_rules, refers_to


# =============================================================================
# EXPORT
# =============================================================================

class TestExportRule:

    @pytest.fixture
    def rule(self):
        return Rule.from_dict({
            "name": "Main options",
            "type": "DTMFMenu",
            "params": {
                "offerMessage": "Hi {{CustomerName}}, press 1 for sales",
                "welcomeMessage": "prompt:welcome",
                "dtmf1": "Sales",
                "errorRuleSetName": "Error handling",
                "autoConfirmMessage": "Confirming {{CustomerName}}",
                "previousRule": "{{CurrentRule}}",
            },
        })

    @pytest.fixture
    def ctx(self, make_context):
        return make_context({
            "CustomerName": "Sam",
            "CurrentRule": "Welcome",
            "CurrentRuleType": "Message",
            "CurrentRule_message": "Welcome!",
        })

    def test_writes_rule_identity(self, ctx, rule):
        now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        export_rule(ctx, rule, now=now)

        assert ctx["CurrentRule"] == "Main options"
        assert ctx["CurrentRuleType"] == "DTMFMenu"
        assert ctx["RuleStart"] == "2024-01-02T03:04:05.000+00:00"

    def test_previous_rule_state_pruned(self, ctx, rule):
        export_rule(ctx, rule)
        assert "CurrentRule_message" not in ctx
        assert "CurrentRule_message" in ctx.tracker

    def test_params_rendered_before_pruning(self, ctx, rule):
        export_rule(ctx, rule)
        assert ctx["CurrentRule_offerMessage"] == "Hi Sam, press 1 for sales"
        assert ctx["CurrentRule_previousRule"] == "Welcome"

    def test_ignored_params_left_for_later(self, ctx, rule):
        export_rule(ctx, rule)
        assert ctx["CurrentRule_autoConfirmMessage"] == "Confirming {{CustomerName}}"

    def test_message_classification(self, ctx, rule, prompts):
        params = export_rule(ctx, rule, prompt_resolver=prompts)

        assert ctx["CurrentRule_offerMessageType"] == "text"
        assert ctx["CurrentRule_welcomeMessageType"] == "prompt"
        assert ctx["CurrentRule_welcomeMessagePromptArn"] == "arn:prompt:welcome"
        assert "CurrentRule_offerMessagePromptArn" not in ctx
        assert params["welcomeMessageType"] == "prompt"

    def test_error_rule_set_flag(self, make_context):
        with_error = Rule.from_dict({"name": "A", "params": {"errorRuleSetName": "Errors"}})
        without_error = Rule.from_dict({"name": "B", "params": {"errorRuleSetName": ""}})

        ctx = make_context()
        export_rule(ctx, with_error)
        assert ctx["CurrentRule_errorRuleSetNameSet"] == "true"

        export_rule(ctx, without_error)
        assert ctx["CurrentRule_errorRuleSetNameSet"] == "false"

    def test_rule_params_not_mutated(self, ctx, rule):
        export_rule(ctx, rule)
        assert rule.params["offerMessage"] == "Hi {{CustomerName}}, press 1 for sales"
        assert "offerMessageType" not in rule.params

    @pytest.mark.parametrize("key,expected", [
        ("message", True),
        ("offerMessage", True),
        ("errorMessage1", True),
        ("offerMessageType", False),
        ("offerMessagePromptArn", False),
        ("dtmf1", False),
    ])
    def test_is_message_param(self, key, expected):
        assert is_message_param(key) is expected


# =============================================================================
# RETURN STACK
# =============================================================================

class TestReturnStack:

    def test_push_peek_pop(self, make_context):
        ctx = make_context()
        assert peek_return_stack(ctx) is None

        push_return_stack(ctx, "Main menu", "Security checks")
        push_return_stack(ctx, "Security", "Verify caller")

        assert peek_return_stack(ctx) == {"ruleSetName": "Security", "ruleName": "Verify caller"}
        assert pop_return_stack(ctx) == {"ruleSetName": "Security", "ruleName": "Verify caller"}
        assert pop_return_stack(ctx) == {"ruleSetName": "Main menu", "ruleName": "Security checks"}
        assert pop_return_stack(ctx) is None
        assert ctx[RETURN_STACK_KEY] == []
        assert RETURN_STACK_KEY in ctx.tracker

    def test_push_does_not_mutate_loaded_list(self, make_context):
        original = [{"ruleSetName": "Main menu", "ruleName": "A"}]
        ctx = make_context({RETURN_STACK_KEY: original})
        push_return_stack(ctx, "Security", "B")
        assert len(original) == 1


class TestNextRuleIndex:

    @pytest.fixture
    def rule_set(self):
        return RuleSet.from_dict({"name": "Main menu", "rules": [{"name": "A"}, {"name": "B"}]})

    def test_start_from_beginning(self, make_context, rule_set):
        assert next_rule_index(make_context(), rule_set) == 0

    def test_rule_after_current(self, make_context, rule_set):
        assert next_rule_index(make_context({"CurrentRule": "A"}), rule_set) == 1

    def test_end_with_return_stack(self, make_context, rule_set):
        ctx = make_context({"CurrentRule": "B"})
        push_return_stack(ctx, "Other", "X")
        assert next_rule_index(ctx, rule_set) == -1

    def test_end_without_return_stack(self, make_context, rule_set):
        with pytest.raises(ConfigurationError, match="end of ruleset 'Main menu'"):
            next_rule_index(make_context({"CurrentRule": "B"}), rule_set)

    def test_unknown_current_rule(self, make_context, rule_set):
        with pytest.raises(ConfigurationError, match="Failed to locate rule 'Z' on ruleset 'Main menu'"):
            next_rule_index(make_context({"CurrentRule": "Z"}), rule_set)


# =============================================================================
# DISTRIBUTION
# =============================================================================

class TestDistribution:

    @pytest.fixture
    def state(self):
        return {
            "CurrentRule_optionCount": "2",
            "CurrentRule_ruleSetName0": "Offer A",
            "CurrentRule_percentage0": "30",
            "CurrentRule_ruleSetName1": "Offer B",
            "CurrentRule_percentage1": "20",
            "CurrentRule_defaultRuleSetName": "Standard",
        }

    def test_options_include_default_remainder(self, state):
        options = distribution_options(state)
        assert [name for name, _ in options] == ["Offer A", "Offer B", "Standard"]
        assert [p for _, p in options] == pytest.approx([0.3, 0.2, 0.5])

    def test_full_allocation_needs_no_default(self, state):
        state["CurrentRule_percentage1"] = "70"
        del state["CurrentRule_defaultRuleSetName"]
        assert [name for name, _ in distribution_options(state)] == ["Offer A", "Offer B"]

    def test_rounding_tolerated(self):
        state = {"CurrentRule_optionCount": "3"}
        for i, percentage in enumerate(["33.3", "33.3", "33.4"]):
            state[f"CurrentRule_ruleSetName{i}"] = f"Option {i}"
            state[f"CurrentRule_percentage{i}"] = percentage
        assert len(distribution_options(state)) == 3

    def test_over_allocation(self, state):
        state["CurrentRule_percentage1"] = "80"
        with pytest.raises(ConfigurationError, match="exceeds 100%"):
            distribution_options(state)

    def test_missing_default(self, state):
        del state["CurrentRule_defaultRuleSetName"]
        with pytest.raises(ConfigurationError, match="no default rule set name"):
            distribution_options(state)

    def test_missing_option(self, state):
        del state["CurrentRule_ruleSetName1"]
        with pytest.raises(ConfigurationError, match="option 1"):
            distribution_options(state)

    @pytest.mark.parametrize("count", [None, "", "two"])
    def test_bad_option_count(self, state, count):
        state["CurrentRule_optionCount"] = count
        with pytest.raises(ConfigurationError, match="missing option count"):
            distribution_options(state)

    def test_solve_is_seedable(self, state, seeded_rng):
        first = [solve_distribution(state, random.Random(7)) for _ in range(5)]
        second = [solve_distribution(state, random.Random(7)) for _ in range(5)]
        assert first == second
        assert solve_distribution(state, seeded_rng) in {"Offer A", "Offer B", "Standard"}

    def test_solve_follows_percentages(self, state, seeded_rng):
        draws = Counter(solve_distribution(state, seeded_rng) for _ in range(4000))
        assert draws["Standard"] / 4000 == pytest.approx(0.5, abs=0.05)
        assert draws["Offer A"] / 4000 == pytest.approx(0.3, abs=0.05)
        assert draws["Offer B"] / 4000 == pytest.approx(0.2, abs=0.05)


# =============================================================================
# REFERENCES
# =============================================================================

class TestReferences:

    @pytest.fixture
    def rule_sets(self):
        return [
            RuleSet.from_dict({"name": "Main menu", "rules": [
                {"name": "Keypad", "type": "DTMFMenu",
                 "params": {"dtmf1": "Sales", "dtmf2": "Sales", "errorRuleSetName": "Errors"}},
                {"name": "Speech", "type": "NLUMenu", "params": {"intentRuleSet_Buy": "Sales"}},
                {"name": "Jump", "type": "RuleSet", "params": {"ruleSetName": "Sales"}},
                {"name": "Queue", "type": "Queue", "params": {"outOfHoursRuleSetName": "Closed"}},
                {"name": "Hello", "type": "Message", "params": {"message": "Sales"}},
            ]}),
            RuleSet.from_dict({"name": "Payments", "rules": [
                {"name": "Card number", "type": "DTMFInput", "params": {"errorRuleSetName": "Sales"}},
            ]}),
        ]

    def test_refers_to(self, rule_sets):
        keypad = rule_sets[0].rules[0]
        assert refers_to(keypad, "Sales") is True
        assert refers_to(keypad, "Errors") is True
        assert refers_to(keypad, "Closed") is False

    def test_find_referring_rules(self, rule_sets):
        names = [rule.name for rule in find_referring_rules("Sales", rule_sets)]
        assert names == ["Keypad", "Speech", "Jump", "Card number"]

    def test_find_referring_rule_sets(self, rule_sets):
        referring = find_referring_rule_sets("Sales", rule_sets)
        assert list(referring) == ["Main menu", "Payments"]
        assert [rule.name for rule in referring["Payments"]] == ["Card number"]

    def test_queue_destinations(self, rule_sets):
        assert [r.name for r in find_referring_rules("Closed", rule_sets)] == ["Queue"]

    def test_nothing_refers(self, rule_sets):
        assert find_referring_rules("Nowhere", rule_sets) == []
        assert find_referring_rule_sets("Nowhere", rule_sets) == {}
