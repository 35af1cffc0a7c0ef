#!/usr/bin/env python3
"""
ApiPosture Rule Engine - ordered registry of security rules.

Rules are evaluated outer, endpoints inner, which fixes the default order of
findings. Disabled rules are skipped and suppressed findings are dropped.
"""

import logging
from typing import Dict, Iterable, List, Optional

from .config import Configuration
from .models import Endpoint, Finding, Severity

logger = logging.getLogger(__name__)


class SecurityRule:
    """Base class for a rule: a pure function from one endpoint to findings."""

    rule_id: str = ''
    name: str = ''

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        raise NotImplementedError

    def finding(self, endpoint: Endpoint, severity: Severity,
                message: str, recommendation: str) -> Finding:
        return Finding(
            rule_id=self.rule_id,
            rule_name=self.name,
            severity=severity,
            message=message,
            endpoint=endpoint,
            recommendation=recommendation,
        )

    def __repr__(self):
        return f'{type(self).__name__}({self.rule_id})'


class RuleEngine:
    """Holds registered rules and applies them with configuration."""

    def __init__(self, config: Optional[Configuration] = None):
        self.config = config or Configuration()
        self._rules: List[SecurityRule] = []
        self._by_id: Dict[str, SecurityRule] = {}

    @property
    def rules(self) -> List[SecurityRule]:
        return list(self._rules)

    def register(self, rule: SecurityRule) -> 'RuleEngine':
        if rule.rule_id in self._by_id:
            raise ValueError(f"Rule {rule.rule_id} is already registered")
        self._rules.append(rule)
        self._by_id[rule.rule_id] = rule
        return self

    def register_defaults(self) -> 'RuleEngine':
        from .security_rules import default_rules
        for rule in default_rules():
            self.register(rule)
        return self

    def get_rule(self, rule_id: str) -> Optional[SecurityRule]:
        return self._by_id.get(rule_id)

    def evaluate(self, endpoints: Iterable[Endpoint]) -> List[Finding]:
        endpoints = list(endpoints)
        findings: List[Finding] = []
        suppressed = 0
        for rule in self._rules:
            if not self.config.is_rule_enabled(rule.rule_id):
                logger.debug("Rule %s disabled by configuration", rule.rule_id)
                continue
            for endpoint in endpoints:
                for finding in rule.evaluate(endpoint):
                    if self.config.is_suppressed(finding.rule_id, endpoint.route,
                                                 endpoint.controller_name):
                        suppressed += 1
                        continue
                    findings.append(finding)
        if suppressed:
            logger.debug("Suppressed %d finding(s)", suppressed)
        return findings


def get_rule_engine(config: Optional[Configuration] = None) -> RuleEngine:
    """RuleEngine with the built-in AP001-AP008 rules registered."""
    return RuleEngine(config).register_defaults()
