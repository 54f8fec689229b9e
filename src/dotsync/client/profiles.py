"""Automatic profile detection.

Rules are evaluated in declaration order; the first rule whose conditions all
hold selects its profile. When no rule matches, the configured default
profile is used. Evaluation is a pure function of a HostFacts value, so the
same facts always select the same profile.
"""

from __future__ import annotations

import logging
import os
import platform
import socket
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from dotsync.core.config import DetectionCondition, DetectionRule, DotsyncConfig
from dotsync.core.errors import ConfigurationError, NoProfileResolved

logger = logging.getLogger(__name__)

# platform.system() -> OS family used in detection rules
_OS_FAMILIES = {
    "darwin": "macos",
    "linux": "linux",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}


def get_os_family() -> str:
    """Get the OS family of the running system (``linux``, ``macos``, ...)."""
    system = platform.system().lower()
    return _OS_FAMILIES.get(system, system)


@dataclass(frozen=True)
class HostFacts:
    """Host and environment facts that detection rules are evaluated against."""

    hostname: str
    os_family: str
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def current(cls) -> HostFacts:
        """Gather facts from the running process."""
        return cls(
            hostname=socket.gethostname(),
            os_family=get_os_family(),
            env=dict(os.environ),
        )


def condition_holds(condition: DetectionCondition, facts: HostFacts) -> bool:
    """Evaluate one condition against host facts."""
    if condition.kind == "hostname":
        return condition.value == facts.hostname
    if condition.kind == "os":
        return condition.value.lower() == facts.os_family
    if condition.kind == "env":
        return condition.name is not None and facts.env.get(condition.name) == condition.value
    return False


class ProfileSelector:
    """Chooses the active profile.

    Usage:
        selector = ProfileSelector.from_config(config)
        name = selector.select(HostFacts.current(), explicit=cli_profile)
    """

    def __init__(
        self,
        rules: Sequence[DetectionRule],
        default_profile: str | None,
    ) -> None:
        self._rules = tuple(rules)
        self._default = default_profile

    @classmethod
    def from_config(cls, config: DotsyncConfig) -> ProfileSelector:
        return cls(config.detection_rules, config.default_profile)

    def detect(self, facts: HostFacts) -> str:
        """Select a profile from detection rules alone.

        Raises:
            NoProfileResolved: If no rule matches and no default is configured.
        """
        for rule in self._rules:
            if all(condition_holds(c, facts) for c in rule.conditions):
                logger.debug("Detection rule matched: profile %s", rule.profile)
                return rule.profile

        if self._default is None:
            raise NoProfileResolved("No detection rule matched and no default profile is configured")
        return self._default

    def select(self, facts: HostFacts, explicit: str | None = None) -> str:
        """Select the active profile; an explicit name bypasses detection."""
        if explicit:
            return explicit
        return self.detect(facts)


def resolve_profile(
    config: DotsyncConfig,
    explicit: str | None = None,
    facts: HostFacts | None = None,
) -> str:
    """Select a profile and check that it exists.

    Raises:
        ConfigurationError: If no profile can be resolved or it is unknown.
    """
    name = ProfileSelector.from_config(config).select(facts or HostFacts.current(), explicit)
    if name not in config.profiles:
        raise ConfigurationError(f"Profile not found: {name}")
    return name
