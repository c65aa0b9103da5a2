"""
Tests for the rules inference walk.
"""

import random

import pytest

from callflow.catalog import RuleSetCatalog
from callflow.errors import ConfigurationError
from callflow.inference import RulesInference, infer
from callflow.rules.export import RETURN_STACK_KEY


@pytest.fixture
def inference(catalog, prompts):
    return RulesInference(catalog, prompt_resolver=prompts)


def single_rule_set(*rules, name="Start", end_point="Inbound"):
    return {"name": name, "end_points": [end_point], "rules": list(rules)}


class TestFirstApproach:

    def test_walks_local_rules_into_shared_rule_set(self, inference, make_context):
        ctx = make_context({"CustomerName": "Sam", "SN_SEGMENT": "BUSINESS"})
        result = inference.run(ctx, "Inbound main")

        assert result.rule_set == "Security"
        assert result.rule.name == "Verify caller"
        assert result.rule_type == "DTMFInput"
        assert result.processed_locally == ["Count calls", "Tag business", "Security checks"]

        assert ctx["CurrentRuleSet"] == "Security"
        assert ctx["CurrentRule"] == "Verify caller"
        assert ctx["CurrentRuleType"] == "DTMFInput"
        assert ctx["CurrentRule_message"] == "Please enter your PIN"
        assert ctx["CallCount"] == "1"
        assert ctx["Greeting"] == "Hello Sam"
        assert ctx["ContactAttributes.Segment"] == "BUSINESS"
        assert ctx[RETURN_STACK_KEY] == [{"ruleSetName": "Main menu", "ruleName": "Security checks"}]
        assert "NextRuleSet" not in ctx

    def test_inactive_rule_skipped(self, inference, make_context):
        ctx = make_context({"CustomerName": "Sam", "SN_SEGMENT": "CONSUMER"})
        result = inference.run(ctx, "Inbound main")
        assert result.processed_locally == ["Count calls", "Security checks"]
        assert "ContactAttributes.Segment" not in ctx

    def test_unknown_end_point(self, inference, make_context):
        with pytest.raises(ConfigurationError, match="Failed to find ruleset for end point: Nowhere"):
            inference.run(make_context(), "Nowhere")

    def test_no_end_point(self, inference, make_context):
        with pytest.raises(ConfigurationError, match="end point"):
            inference.run(make_context())


class TestReturn:

    def test_resumes_after_jump(self, inference, make_context):
        ctx = make_context({"CustomerName": "Sam", "SN_SEGMENT": "BUSINESS"})
        inference.run(ctx, "Inbound main")

        returning = make_context(ctx.as_dict())
        returning.set("Verified", "true")
        result = inference.run(returning)

        assert result.rule_set == "Main menu"
        assert result.rule.name == "Main options"
        assert result.processed_locally == []
        assert returning["CurrentRule_offerMessage"] == "Hi Sam, press 1 for sales"
        assert returning[RETURN_STACK_KEY] == []
        # the counter is not bumped again on return
        assert returning["CallCount"] == "1"

    def test_no_rule_activates_pops_stack(self, inference, make_context):
        ctx = make_context({
            "NextRuleSet": "Security",
            "Verified": "true",
            RETURN_STACK_KEY: [{"ruleSetName": "Main menu", "ruleName": "Security checks"}],
        })
        result = inference.run(ctx)
        assert result.rule.name == "Main options"
        assert result.steps == 2

    def test_no_rule_and_empty_stack(self, inference, make_context):
        ctx = make_context({"NextRuleSet": "Security", "Verified": "true"})
        with pytest.raises(ConfigurationError, match="No rule activated in ruleset 'Security'"):
            inference.run(ctx)

    def test_pending_next_rule_set(self, inference, make_context):
        ctx = make_context({"CurrentRuleSet": "Main menu", "CurrentRule": "Main options", "NextRuleSet": "Sales"})
        result = inference.run(ctx)

        assert result.rule_set == "Sales"
        assert result.rule_type == "Queue"
        assert ctx["CurrentRule_outOfHoursRuleSetName"] == "Closed"


class TestLocalRules:

    def test_increment_existing_counter(self, make_context):
        catalog = RuleSetCatalog.from_dicts([single_rule_set(
            {"name": "Count", "type": "UpdateStates",
             "params": {"updateStates": [{"key": "Attempts", "value": "increment"}]}},
            {"name": "Bye", "type": "Terminate"},
        )])
        ctx = make_context({"Attempts": "4"})
        infer(ctx, catalog, "Inbound")
        assert ctx["Attempts"] == "5"

    def test_rule_set_with_message_stops(self, make_context):
        catalog = RuleSetCatalog.from_dicts([
            single_rule_set({"name": "Transfer", "type": "RuleSet",
                             "params": {"ruleSetName": "Sales", "message": "Transferring you to sales"}}),
            {"name": "Sales", "rules": [{"name": "Queue", "type": "Queue"}]},
        ])
        ctx = make_context()
        result = infer(ctx, catalog, "Inbound")

        assert result.rule_type == "RuleSet"
        assert result.rule_set == "Start"
        assert ctx["NextRuleSet"] == "Sales"
        assert RETURN_STACK_KEY not in ctx

        follow_up = infer(ctx, catalog)
        assert follow_up.rule_set == "Sales"

    def test_distribution(self, make_context):
        catalog = RuleSetCatalog.from_dicts([
            single_rule_set({"name": "Split", "type": "Distribution", "params": {
                "optionCount": "1",
                "ruleSetName0": "Offer",
                "percentage0": "100",
            }}),
            {"name": "Offer", "rules": [{"name": "Pitch", "type": "Message", "params": {"message": "Hello"}}]},
        ])
        result = infer(make_context(), catalog, "Inbound", rng=random.Random(1))

        assert result.rule_set == "Offer"
        assert result.rule.name == "Pitch"
        assert result.processed_locally == ["Split"]

    def test_rule_set_without_target(self, make_context):
        catalog = RuleSetCatalog.from_dicts([single_rule_set({"name": "Broken", "type": "RuleSet"})])
        with pytest.raises(ConfigurationError, match="has no ruleSetName"):
            infer(make_context(), catalog, "Inbound")

    def test_bad_update_states(self, make_context):
        catalog = RuleSetCatalog.from_dicts([single_rule_set(
            {"name": "Broken", "type": "UpdateStates", "params": {"updateStates": [{"value": "x"}]}},
        )])
        with pytest.raises(ConfigurationError, match="entries need a key"):
            infer(make_context(), catalog, "Inbound")

    def test_endless_jumps_are_stopped(self, make_context):
        catalog = RuleSetCatalog.from_dicts([
            single_rule_set({"name": "To B", "type": "RuleSet", "params": {"ruleSetName": "B"}}),
            {"name": "B", "rules": [{"name": "To Start", "type": "RuleSet", "params": {"ruleSetName": "Start"}}]},
        ])
        with pytest.raises(ConfigurationError, match="exceeded 5 steps"):
            infer(make_context(), catalog, "Inbound", max_steps=5)


class TestInferenceResult:

    def test_to_dict(self, inference, make_context):
        result = inference.run(make_context({"SN_SEGMENT": "BUSINESS"}), "Inbound main")
        assert result.to_dict() == {
            "rule_set": "Security",
            "rule": "Verify caller",
            "rule_type": "DTMFInput",
            "processed_locally": ["Count calls", "Tag business", "Security checks"],
            "steps": 4,
        }
