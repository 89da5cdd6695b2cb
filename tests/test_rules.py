"""Rule evaluation."""

from mclaunch.versions import rules
from mclaunch.versions.models import Rule


def test_no_rules_means_allowed():
    assert rules.rules_allow(None)
    assert rules.rules_allow([])


def test_last_matching_rule_wins(monkeypatch):
    monkeypatch.setattr(rules, "os_name", lambda: "osx")
    declared = [Rule(action="allow"), Rule.model_validate({"action": "disallow", "os": {"name": "osx"}})]
    assert not rules.rules_allow(declared)
    monkeypatch.setattr(rules, "os_name", lambda: "linux")
    assert rules.rules_allow(declared)


def test_os_only_allow_excludes_other_platforms(monkeypatch):
    monkeypatch.setattr(rules, "os_name", lambda: "windows")
    declared = [Rule.model_validate({"action": "allow", "os": {"name": "osx"}})]
    assert not rules.rules_allow(declared)


def test_feature_rules_need_the_feature_enabled():
    declared = [Rule.model_validate({"action": "allow", "features": {"is_demo_user": True}})]
    assert not rules.rules_allow(declared)
    assert rules.rules_allow(declared, {"is_demo_user": True})


def test_classpath_separator(monkeypatch):
    monkeypatch.setattr(rules, "os_name", lambda: "windows")
    assert rules.classpath_separator() == ";"
    monkeypatch.setattr(rules, "os_name", lambda: "linux")
    assert rules.classpath_separator() == ":"
