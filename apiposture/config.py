#!/usr/bin/env python3
"""
Scan configuration: severity gates, rule toggles, suppressions and display flags.

Configuration is read from ``.apiposture.json`` (or ``.apiposture.yml``)
in the scanned project, the current directory, or an explicit path. A file
that exists but cannot be parsed is an error rather than a silent fallback
to defaults.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .models import Severity, UnknownEnumValue

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ('.apiposture.json', '.apiposture.yml', '.apiposture.yaml')


class ConfigurationError(ValueError):
    """Raised for a malformed configuration file or value."""


def _glob_to_regex(pattern: str):
    parts = []
    for ch in pattern:
        if ch == '*':
            parts.append('.*')
        elif ch == '?':
            parts.append('.')
        else:
            parts.append(re.escape(ch))
    return re.compile('^' + ''.join(parts) + '$')


@dataclass
class Suppression:
    """Silences findings whose rule, route and controller all match.

    Unset fields match anything, so an empty entry suppresses everything.
    """
    rule_id: Optional[str] = None
    route: Optional[str] = None
    controller: Optional[str] = None
    reason: str = ''

    def __post_init__(self):
        self._route_re = _glob_to_regex(self.route) if self.route is not None else None

    def matches(self, rule_id: str, route: str, controller: Optional[str] = None) -> bool:
        if self.rule_id is not None and self.rule_id != rule_id:
            return False
        if self._route_re is not None and not self._route_re.match(route):
            return False
        if self.controller is not None and self.controller != controller:
            return False
        return True


@dataclass
class Configuration:
    default_severity: Severity = Severity.INFO
    fail_on: Severity = Severity.HIGH
    suppressions: List[Suppression] = field(default_factory=list)
    rules: Dict[str, bool] = field(default_factory=dict)
    use_colors: bool = True
    use_icons: bool = True
    source: Optional[str] = None

    def is_rule_enabled(self, rule_id: str) -> bool:
        return self.rules.get(rule_id, True)

    def is_suppressed(self, rule_id: str, route: str, controller: Optional[str] = None) -> bool:
        return any(s.matches(rule_id, route, controller) for s in self.suppressions)

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> 'Configuration':
        """Build a configuration from decoded JSON/YAML data."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("configuration root must be an object")
        config = cls(source=source)

        severity = _section(data, 'severity')
        try:
            if 'default' in severity:
                config.default_severity = Severity.from_string(severity['default'])
            if 'failOn' in severity:
                config.fail_on = Severity.from_string(severity['failOn'])
        except UnknownEnumValue as e:
            raise ConfigurationError(f"severity: {e}") from e

        suppressions = data.get('suppressions', [])
        if not isinstance(suppressions, list):
            raise ConfigurationError("'suppressions' must be a list")
        for i, entry in enumerate(suppressions):
            if not isinstance(entry, dict):
                raise ConfigurationError(f"suppressions[{i}] must be an object")
            values = {}
            for key in ('ruleId', 'route', 'controller'):
                value = entry.get(key)
                if value is not None and not isinstance(value, str):
                    raise ConfigurationError(f"suppressions[{i}].{key} must be a string")
                values[key] = value
            config.suppressions.append(Suppression(
                rule_id=values['ruleId'],
                route=values['route'],
                controller=values['controller'],
                reason=str(entry.get('reason', '')),
            ))

        for rule_id, settings in _section(data, 'rules').items():
            if not isinstance(settings, dict):
                raise ConfigurationError(f"rules.{rule_id} must be an object")
            enabled = settings.get('enabled', True)
            if not isinstance(enabled, bool):
                raise ConfigurationError(f"rules.{rule_id}.enabled must be a boolean")
            config.rules[str(rule_id)] = enabled

        display = _section(data, 'display')
        for key, attr in (('useColors', 'use_colors'), ('useIcons', 'use_icons')):
            if key in display:
                if not isinstance(display[key], bool):
                    raise ConfigurationError(f"display.{key} must be a boolean")
                setattr(config, attr, display[key])
        return config

    @classmethod
    def from_file(cls, path: str) -> 'Configuration':
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as e:
            raise ConfigurationError(f"cannot read {path}: {e.strerror or e}") from e
        try:
            if path.endswith(('.yml', '.yaml')):
                data = yaml.safe_load(raw)
            else:
                data = json.loads(raw)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"cannot parse {path}: {e}") from e
        logger.debug("Loaded configuration from %s", path)
        return cls.from_dict(data, source=path)

    @classmethod
    def load(cls, explicit_path: Optional[str] = None, scan_path: Optional[str] = None) -> 'Configuration':
        """Resolve and load configuration; defaults when no file is found."""
        if explicit_path:
            if not os.path.isfile(explicit_path):
                raise ConfigurationError(f"config file not found: {explicit_path}")
            return cls.from_file(explicit_path)
        path = find_config_file(scan_path)
        if path is None:
            return cls()
        return cls.from_file(path)


def _section(data: Dict, key: str) -> Dict:
    value = data.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{key}' must be an object")
    return value


def find_config_file(scan_path: Optional[str] = None) -> Optional[str]:
    """Look in the scanned directory first, then the working directory."""
    search = []
    if scan_path:
        base = scan_path if os.path.isdir(scan_path) else os.path.dirname(scan_path)
        search.append(base)
    search.append(os.getcwd())
    for directory in search:
        for name in CONFIG_FILENAMES:
            candidate = os.path.join(directory, name)
            if os.path.isfile(candidate):
                return candidate
    return None
