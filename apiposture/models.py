#!/usr/bin/env python3
"""
Data model for API posture scans.

Endpoints are built once by a discoverer, classified once by the
SecurityClassifier and then only ever read. Findings and scan results are
immutable snapshots; display-time filtering produces new collections.
"""

import enum
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple, Any


class UnknownEnumValue(ValueError):
    """Raised when a caller-supplied string names no member of an enum."""

    def __init__(self, enum_name: str, value: Any, choices: Iterable[str]):
        self.enum_name = enum_name
        self.value = value
        self.choices = list(choices)
        super().__init__(
            f"Unknown {enum_name} '{value}' (expected one of: {', '.join(self.choices)})"
        )


def _lookup(enum_cls, value, key=lambda m: m.value):
    """Case-insensitive lookup of an enum member by its string key."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        wanted = value.strip().lower()
        for member in enum_cls:
            if key(member).lower() == wanted:
                return member
    raise UnknownEnumValue(enum_cls.__name__, value, [key(m) for m in enum_cls])


# ── Enums ────────────────────────────────────────────────────────────────

class HttpMethod(enum.Flag):
    GET = 1
    POST = 2
    PUT = 4
    DELETE = 8
    PATCH = 16

    @classmethod
    def from_string(cls, value: str) -> 'HttpMethod':
        return _lookup(cls, value, key=lambda m: m.name)

    @classmethod
    def all(cls) -> Tuple['HttpMethod', ...]:
        return ALL_METHODS

    @property
    def is_write(self) -> bool:
        return self in WRITE_METHODS


ALL_METHODS = (HttpMethod.GET, HttpMethod.POST, HttpMethod.PUT,
               HttpMethod.DELETE, HttpMethod.PATCH)
WRITE_METHODS = frozenset({HttpMethod.POST, HttpMethod.PUT,
                           HttpMethod.DELETE, HttpMethod.PATCH})


def normalize_methods(methods: Iterable[HttpMethod]) -> Tuple[HttpMethod, ...]:
    """Deduplicate a verb collection into canonical GET..PATCH order."""
    present = set(methods)
    return tuple(m for m in ALL_METHODS if m in present)


def methods_to_bitmask(methods: Iterable[HttpMethod]) -> int:
    mask = 0
    for m in methods:
        mask |= m.value
    return mask


def methods_from_bitmask(mask: int) -> Tuple[HttpMethod, ...]:
    if mask < 0 or mask > methods_to_bitmask(ALL_METHODS):
        raise UnknownEnumValue('HttpMethod bitmask', mask, [str(m.value) for m in ALL_METHODS])
    return tuple(m for m in ALL_METHODS if mask & m.value)


class Severity(enum.IntEnum):
    INFO = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_string(cls, value: str) -> 'Severity':
        return _lookup(cls, value, key=lambda m: m.name)


class SecurityClassification(enum.Enum):
    PUBLIC = 'public'
    AUTHENTICATED = 'authenticated'
    ROLE_RESTRICTED = 'role_restricted'
    POLICY_RESTRICTED = 'policy_restricted'

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ').title()

    @classmethod
    def from_string(cls, value: str) -> 'SecurityClassification':
        return _lookup(cls, value)


class EndpointType(enum.Enum):
    CONTROLLER = 'controller'
    ROUTE = 'route'
    ANNOTATION = 'annotation'
    FILE = 'file'


class InheritedFrom(enum.Enum):
    NONE = 'none'
    CLASS = 'class'
    CONTROLLER = 'controller'


class SortField(enum.Enum):
    SEVERITY = 'severity'
    ROUTE = 'route'
    METHOD = 'method'
    CLASSIFICATION = 'classification'
    CONTROLLER = 'controller'
    LOCATION = 'location'

    @classmethod
    def from_string(cls, value: str) -> 'SortField':
        return _lookup(cls, value)


class SortDirection(enum.Enum):
    ASC = 'asc'
    DESC = 'desc'

    @classmethod
    def from_string(cls, value: str) -> 'SortDirection':
        return _lookup(cls, value)


class GroupField(enum.Enum):
    CONTROLLER = 'controller'
    CLASSIFICATION = 'classification'
    SEVERITY = 'severity'
    METHOD = 'method'
    TYPE = 'type'

    @classmethod
    def from_string(cls, value: str) -> 'GroupField':
        return _lookup(cls, value)


# ── Records ──────────────────────────────────────────────────────────────

def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class SourceLocation:
    file_path: str
    line: int
    column: int = 0

    def __str__(self):
        return f"{self.file_path}:{self.line}"

    def to_dict(self) -> Dict:
        return {'file': self.file_path, 'line': self.line, 'column': self.column}


@dataclass(frozen=True)
class AuthorizationInfo:
    """Normalized authorization signal for one endpoint.

    roles and policies are deduplicated in first-seen order; middleware keeps
    the order in which it was applied.
    """
    has_auth: bool = False
    has_allow_anonymous: bool = False
    roles: Tuple[str, ...] = ()
    policies: Tuple[str, ...] = ()
    middleware: Tuple[str, ...] = ()
    inherited_from: InheritedFrom = InheritedFrom.NONE

    def __post_init__(self):
        object.__setattr__(self, 'roles', _unique(self.roles))
        object.__setattr__(self, 'policies', _unique(self.policies))
        object.__setattr__(self, 'middleware', tuple(self.middleware))

    def to_dict(self) -> Dict:
        return {
            'hasAuth': self.has_auth,
            'hasAllowAnonymous': self.has_allow_anonymous,
            'roles': list(self.roles),
            'policies': list(self.policies),
            'middleware': list(self.middleware),
            'inheritedFrom': None if self.inherited_from is InheritedFrom.NONE
            else self.inherited_from.value,
        }


@dataclass(frozen=True)
class Endpoint:
    route: str
    methods: Tuple[HttpMethod, ...]
    type: EndpointType
    location: SourceLocation
    authorization: AuthorizationInfo = field(default_factory=AuthorizationInfo)
    controller_name: Optional[str] = None
    action_name: Optional[str] = None
    classification: SecurityClassification = SecurityClassification.PUBLIC

    def __post_init__(self):
        methods = normalize_methods(self.methods)
        if not methods:
            raise ValueError(f"Endpoint '{self.route}' must have at least one HTTP method")
        object.__setattr__(self, 'methods', methods)

    def with_classification(self, classification: SecurityClassification) -> 'Endpoint':
        return replace(self, classification=classification)

    def has_write_methods(self) -> bool:
        return any(m.is_write for m in self.methods)

    def methods_string(self) -> str:
        return ', '.join(m.name for m in self.methods)

    @property
    def methods_bitmask(self) -> int:
        return methods_to_bitmask(self.methods)

    def to_dict(self) -> Dict:
        return {
            'route': self.route,
            'methods': [m.name for m in self.methods],
            'type': self.type.value,
            'location': self.location.to_dict(),
            'authorization': self.authorization.to_dict(),
            'classification': self.classification.value,
            'controllerName': self.controller_name,
            'actionName': self.action_name,
        }


@dataclass(frozen=True)
class Finding:
    rule_id: str
    rule_name: str
    severity: Severity
    message: str
    endpoint: Endpoint
    recommendation: str = ''

    def to_dict(self) -> Dict:
        return {
            'ruleId': self.rule_id,
            'ruleName': self.rule_name,
            'severity': self.severity.label,
            'message': self.message,
            'endpoint': {
                'route': self.endpoint.route,
                'methods': [m.name for m in self.endpoint.methods],
                'location': self.endpoint.location.to_dict(),
                'controllerName': self.endpoint.controller_name,
                'actionName': self.endpoint.action_name,
            },
            'recommendation': self.recommendation,
        }


@dataclass(frozen=True)
class ScanResult:
    scanned_path: str
    endpoints: Tuple[Endpoint, ...] = ()
    findings: Tuple[Finding, ...] = ()
    scanned_files: Tuple[str, ...] = ()
    failed_files: Tuple[str, ...] = ()
    duration: float = 0.0

    def __post_init__(self):
        for name in ('endpoints', 'findings', 'scanned_files', 'failed_files'):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def replace(self, **changes) -> 'ScanResult':
        """Return a new snapshot with some collections swapped out."""
        return replace(self, **changes)

    def severity_counts(self) -> Dict[Severity, int]:
        counts = {}
        for finding in self.findings:
            counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return counts

    def to_dict(self) -> Dict:
        by_severity = self.severity_counts()
        by_classification: Dict[str, int] = {}
        for ep in self.endpoints:
            label = ep.classification.label
            by_classification[label] = by_classification.get(label, 0) + 1
        return {
            'scannedPath': self.scanned_path,
            'endpoints': [ep.to_dict() for ep in self.endpoints],
            'findings': [f.to_dict() for f in self.findings],
            'scannedFiles': list(self.scanned_files),
            'failedFiles': list(self.failed_files),
            'duration': round(self.duration, 3),
            'summary': {
                'totalEndpoints': len(self.endpoints),
                'totalFindings': len(self.findings),
                'totalFilesScanned': len(self.scanned_files),
                'totalFilesFailed': len(self.failed_files),
                'bySeverity': {s.label: by_severity[s]
                               for s in sorted(by_severity, reverse=True)},
                'byClassification': by_classification,
            },
        }


def endpoint_sort_key(endpoint: Endpoint) -> Tuple[str, int, int]:
    return (endpoint.location.file_path, endpoint.location.line, endpoint.location.column)


def dedupe_endpoints(endpoints: Iterable[Endpoint]) -> List[Endpoint]:
    """Drop endpoints that repeat an earlier (route, methods, location)."""
    seen = set()
    unique = []
    for ep in endpoints:
        key = (ep.route, ep.methods, ep.location.file_path, ep.location.line)
        if key in seen:
            continue
        seen.add(key)
        unique.append(ep)
    return unique
