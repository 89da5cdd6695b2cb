"""Platform rule evaluation for libraries and arguments."""

import platform
import re
from typing import Dict, Iterable, Optional

from .models import Rule

OS_NAMES = {"Windows": "windows", "Darwin": "osx", "Linux": "linux"}
ARCH_NAMES = {
    "x86": "x86", "i386": "x86", "i686": "x86",
    "x86_64": "x64", "amd64": "x64",
    "aarch64": "arm64", "arm64": "arm64",
}


def os_name() -> str:
    """Current OS in manifest vocabulary (windows, osx, linux)."""
    return OS_NAMES.get(platform.system(), "unknown")


def os_arch() -> str:
    return ARCH_NAMES.get(platform.machine().lower(), "unknown")


def classpath_separator() -> str:
    return ";" if os_name() == "windows" else ":"


def natives_arch_bits() -> str:
    """Value substituted for ``${arch}`` in native classifier templates."""
    return "32" if os_arch() == "x86" else "64"


def rule_matches(rule: Rule, features: Optional[Dict[str, bool]] = None) -> bool:
    if rule.os is not None:
        if rule.os.name and rule.os.name != os_name():
            return False
        if rule.os.arch and rule.os.arch != os_arch():
            return False
        if rule.os.version and not re.search(rule.os.version, platform.release()):
            return False
    if rule.features:
        enabled = features or {}
        for feature, wanted in rule.features.items():
            if enabled.get(feature, False) != wanted:
                return False
    return True


def rules_allow(rules: Optional[Iterable[Rule]], features: Optional[Dict[str, bool]] = None) -> bool:
    """Last matching rule wins; no rules means allowed, rules with no match mean disallowed."""
    if not rules:
        return True
    allowed = False
    for rule in rules:
        if rule_matches(rule, features):
            allowed = rule.action == "allow"
    return allowed
