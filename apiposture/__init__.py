"""
ApiPosture - static API security posture auditor for PHP projects.

Discovers HTTP endpoints in Laravel, Symfony, Slim and plain PHP code,
classifies their authorization and flags insecure exposure patterns.
"""

from .models import (
    HttpMethod, Severity, SecurityClassification, EndpointType, InheritedFrom,
    SortField, SortDirection, GroupField, UnknownEnumValue,
    SourceLocation, AuthorizationInfo, Endpoint, Finding, ScanResult,
)
from .ts_adapter import ParseError, parse_php_ts, parse_php_source, parse_php_file
from .config import Configuration, ConfigurationError, Suppression
from .classifier import SecurityClassifier
from .rule_engine import RuleEngine, SecurityRule, get_rule_engine
from .discovery import EndpointDiscoverer, default_discoverers, join_paths
from .analyzer import ProjectAnalyzer, find_php_files

__version__ = "1.0.0"
