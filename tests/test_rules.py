from __future__ import annotations

import unittest

from roster_doctor.rule_suggestions import suggest_rules
from roster_doctor.rules import (
    DEFAULT_RULE_PRIORITY,
    PRIORITY_KEYS,
    BusinessRule,
    PrioritySettings,
    build_rules_config,
    impact_level,
    rules_from_document,
    suggestion_to_rule,
)


class BusinessRuleTests(unittest.TestCase):
    def test_defaults(self):
        rule = BusinessRule(name="Pair setup tasks")
        self.assertEqual(rule.type, "custom")
        self.assertEqual(rule.priority, DEFAULT_RULE_PRIORITY)
        self.assertTrue(rule.active)
        self.assertRegex(rule.id, r"^rule_[0-9a-f]{12}$")
        self.assertTrue(rule.created_at.endswith("Z"))
        self.assertNotEqual(rule.id, BusinessRule(name="Other").id)

    def test_rejects_unknown_type_and_bad_priority(self):
        with self.assertRaises(ValueError):
            BusinessRule(name="x", type="teleport")
        for priority in (0, 101, True, "50"):
            with self.subTest(priority=priority):
                with self.assertRaises(ValueError):
                    BusinessRule(name="x", priority=priority)

    def test_updated_keeps_identity(self):
        rule = BusinessRule(name="Limit", type="loadLimit", priority=40)
        changed = rule.updated(active=False, priority=90, id="rule_other", created_at="never")
        self.assertEqual(changed.id, rule.id)
        self.assertEqual(changed.created_at, rule.created_at)
        self.assertFalse(changed.active)
        self.assertEqual(changed.priority, 90)
        self.assertTrue(rule.active)

    def test_dict_round_trip(self):
        rule = BusinessRule(name="Window", type="phaseWindow", parameters={"taskId": "T1", "allowedPhases": [1, 2]})
        payload = rule.to_dict()
        self.assertEqual(payload["createdAt"], rule.created_at)
        self.assertEqual(BusinessRule.from_dict(payload), rule)

    def test_accepted_suggestion_becomes_active_default_priority_rule(self):
        suggestion = suggest_rules("Tasks T12 and T14 should always run together")[0]
        rule = suggestion_to_rule(suggestion)
        self.assertEqual(rule.type, "coRun")
        self.assertEqual(rule.name, suggestion.title)
        self.assertEqual(rule.parameters, {"tasks": ["T12", "T14"]})
        self.assertEqual(rule.priority, DEFAULT_RULE_PRIORITY)
        self.assertTrue(rule.active)
        self.assertNotEqual(rule.id, suggestion.id)


class PrioritySettingsTests(unittest.TestCase):
    def test_defaults_and_bounds(self):
        settings = PrioritySettings()
        self.assertEqual(set(settings.to_dict()), set(PRIORITY_KEYS))
        self.assertEqual(settings.average(), 50)
        with self.assertRaises(ValueError):
            PrioritySettings(costOptimization=101)
        with self.assertRaises(ValueError):
            PrioritySettings.from_dict({"speed": 10})

    def test_impact_levels(self):
        for weight, label in [(100, "Very High"), (80, "Very High"), (79, "High"), (40, "Medium"), (20, "Low"), (19, "Very Low"), (0, "Very Low")]:
            with self.subTest(weight=weight):
                self.assertEqual(impact_level(weight), label)
        self.assertEqual(PrioritySettings(timeEfficiency=90).impact_levels()["timeEfficiency"], "Very High")

    def test_normalized_shares(self):
        settings = PrioritySettings(costOptimization=100, timeEfficiency=0, qualityAssurance=0, resourceUtilization=0, clientSatisfaction=0)
        self.assertEqual(settings.normalized_shares()["costOptimization"], 100.0)
        zero = PrioritySettings(**{key: 0 for key in PRIORITY_KEYS})
        self.assertEqual(set(zero.normalized_shares().values()), {20.0})

    def test_with_weight(self):
        settings = PrioritySettings().with_weight("clientSatisfaction", 85)
        self.assertEqual(settings.clientSatisfaction, 85)
        with self.assertRaises(ValueError):
            settings.with_weight("speed", 10)


class RulesConfigTests(unittest.TestCase):
    def test_config_contains_only_active_rules(self):
        active = BusinessRule(name="On")
        inactive = BusinessRule(name="Off", active=False)
        config = build_rules_config([active, inactive], PrioritySettings(qualityAssurance=70))
        self.assertEqual(config["contract"]["name"], "roster_doctor.rules_config")
        self.assertEqual([rule["id"] for rule in config["rules"]], [active.id])
        self.assertEqual(config["priorities"]["qualityAssurance"], 70)
        self.assertEqual(config["metadata"]["totalRules"], 1)
        self.assertEqual(config["metadata"]["version"], "1.0")

    def test_rules_from_either_document_shape(self):
        rule = BusinessRule(name="Limit", type="loadLimit", parameters={"workerGroup": "OPS", "maxSlotsPerPhase": 2})
        export_shape = {"businessRules": [rule.to_dict()], "prioritySettings": {"timeEfficiency": 65}}
        config_shape = build_rules_config([rule], PrioritySettings(timeEfficiency=65))
        for document in (export_shape, config_shape):
            rules, priorities = rules_from_document(document)
            self.assertEqual(rules, [rule])
            self.assertEqual(priorities.timeEfficiency, 65)

    def test_rules_document_must_be_object_with_list(self):
        with self.assertRaises(ValueError):
            rules_from_document([])
        with self.assertRaises(ValueError):
            rules_from_document({"rules": {"id": "x"}})


if __name__ == "__main__":
    unittest.main()
