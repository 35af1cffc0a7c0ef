#!/usr/bin/env python3
"""
Display-time filtering, sorting and grouping of scan results.

All functions return new lists; a ScanResult is never modified.
"""

from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from .models import (
    Endpoint, Finding, GroupField, HttpMethod, SecurityClassification, Severity,
    SortDirection, SortField, endpoint_sort_key,
)

NO_CONTROLLER = 'No Controller'


def _endpoint_matches(ep: Endpoint,
                      classification: Optional[SecurityClassification],
                      method: Optional[HttpMethod],
                      route_contains: Optional[str],
                      controller: Optional[str]) -> bool:
    if classification is not None and ep.classification is not classification:
        return False
    if method is not None and method not in ep.methods:
        return False
    if route_contains and route_contains.lower() not in ep.route.lower():
        return False
    if controller is not None and ep.controller_name != controller:
        return False
    return True


def filter_endpoints(endpoints: Iterable[Endpoint],
                     classification: Optional[SecurityClassification] = None,
                     method: Optional[HttpMethod] = None,
                     route_contains: Optional[str] = None,
                     controller: Optional[str] = None) -> List[Endpoint]:
    return [ep for ep in endpoints
            if _endpoint_matches(ep, classification, method, route_contains, controller)]


def filter_findings(findings: Iterable[Finding],
                    min_severity: Optional[Severity] = None,
                    classification: Optional[SecurityClassification] = None,
                    method: Optional[HttpMethod] = None,
                    route_contains: Optional[str] = None,
                    controller: Optional[str] = None,
                    rule_id: Optional[str] = None) -> List[Finding]:
    out = []
    for f in findings:
        if min_severity is not None and f.severity < min_severity:
            continue
        if rule_id is not None and f.rule_id.upper() != rule_id.upper():
            continue
        if not _endpoint_matches(f.endpoint, classification, method, route_contains, controller):
            continue
        out.append(f)
    return out


def _classification_rank(c: SecurityClassification) -> int:
    return list(SecurityClassification).index(c)


def _endpoint_key(field: SortField, severities: Optional[Dict[Endpoint, Severity]] = None) -> Callable:
    if field is SortField.ROUTE:
        return lambda ep: ep.route
    if field is SortField.METHOD:
        return lambda ep: (ep.methods_bitmask, ep.route)
    if field is SortField.CLASSIFICATION:
        return lambda ep: (_classification_rank(ep.classification), ep.route)
    if field is SortField.CONTROLLER:
        return lambda ep: (ep.controller_name or '', ep.action_name or '', ep.route)
    if field is SortField.LOCATION:
        return endpoint_sort_key
    # severity: worst finding on the endpoint, when known
    if severities:
        return lambda ep: (int(severities.get(ep, Severity.INFO)), ep.route)
    return lambda ep: ep.route


def sort_endpoints(endpoints: Iterable[Endpoint], field: SortField,
                   direction: SortDirection = SortDirection.ASC,
                   findings: Optional[Iterable[Finding]] = None) -> List[Endpoint]:
    severities: Dict[Endpoint, Severity] = {}
    for f in findings or ():
        if f.endpoint not in severities or f.severity > severities[f.endpoint]:
            severities[f.endpoint] = f.severity
    return sorted(endpoints, key=_endpoint_key(field, severities),
                  reverse=direction is SortDirection.DESC)


def sort_findings(findings: Iterable[Finding], field: SortField,
                  direction: SortDirection = SortDirection.ASC) -> List[Finding]:
    if field is SortField.SEVERITY:
        key = lambda f: (int(f.severity), f.rule_id)
    else:
        ep_key = _endpoint_key(field)
        key = lambda f: ep_key(f.endpoint)
    return sorted(findings, key=key, reverse=direction is SortDirection.DESC)


def _group_label(ep: Endpoint, field: GroupField, finding: Optional[Finding] = None) -> str:
    if field is GroupField.CONTROLLER:
        return ep.controller_name or NO_CONTROLLER
    if field is GroupField.CLASSIFICATION:
        return ep.classification.label
    if field is GroupField.METHOD:
        return ep.methods_string()
    if field is GroupField.TYPE:
        return ep.type.value
    return finding.severity.label if finding is not None else 'N/A'


def group_endpoints(endpoints: Iterable[Endpoint], field: GroupField) -> 'OrderedDict[str, List[Endpoint]]':
    groups: Dict[str, List[Endpoint]] = {}
    for ep in endpoints:
        groups.setdefault(_group_label(ep, field), []).append(ep)
    return OrderedDict(sorted(groups.items()))


def group_findings(findings: Iterable[Finding], field: GroupField) -> 'OrderedDict[str, List[Finding]]':
    groups: Dict[str, List[Finding]] = {}
    for f in findings:
        groups.setdefault(_group_label(f.endpoint, field, f), []).append(f)
    return OrderedDict(sorted(groups.items()))
