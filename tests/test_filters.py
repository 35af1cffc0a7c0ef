#!/usr/bin/env python3
"""
Tests for display-time filtering, sorting and grouping.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apiposture.filters import (
    NO_CONTROLLER, filter_endpoints, filter_findings, group_endpoints, group_findings,
    sort_endpoints, sort_findings,
)
from apiposture.models import (
    AuthorizationInfo, Endpoint, EndpointType, Finding, GroupField, HttpMethod,
    SecurityClassification as SC, Severity, SortDirection, SortField, SourceLocation,
)


def ep(route, methods=(HttpMethod.GET,), classification=SC.PUBLIC, controller=None,
       file='routes.php', line=1):
    return Endpoint(route, methods, EndpointType.ROUTE, SourceLocation(file, line),
                    AuthorizationInfo(), controller_name=controller,
                    classification=classification)


USERS = ep('/api/users', controller='UserController', line=3,
           classification=SC.AUTHENTICATED)
ORDERS = ep('/api/orders', (HttpMethod.POST,), controller='OrderController', line=7)
ADMIN = ep('/api/admin', (HttpMethod.DELETE,), classification=SC.ROLE_RESTRICTED,
           file='admin.php', line=2)
ENDPOINTS = [USERS, ORDERS, ADMIN]

FINDINGS = [
    Finding('AP001', 'Public', Severity.MEDIUM, 'm', ORDERS),
    Finding('AP004', 'Writes', Severity.CRITICAL, 'm', ORDERS),
    Finding('AP006', 'Weak', Severity.LOW, 'm', ADMIN),
    Finding('AP008', 'Unprotected', Severity.INFO, 'm', USERS),
]


# ---------- Filtering ----------

class TestFilter:
    def test_no_filters(self):
        assert filter_endpoints(ENDPOINTS) == ENDPOINTS

    def test_classification(self):
        assert filter_endpoints(ENDPOINTS, classification=SC.PUBLIC) == [ORDERS]

    def test_method(self):
        assert filter_endpoints(ENDPOINTS, method=HttpMethod.DELETE) == [ADMIN]

    def test_route_contains_case_insensitive(self):
        assert filter_endpoints(ENDPOINTS, route_contains='ADMIN') == [ADMIN]

    def test_controller(self):
        assert filter_endpoints(ENDPOINTS, controller='UserController') == [USERS]

    def test_min_severity(self):
        kept = filter_findings(FINDINGS, min_severity=Severity.MEDIUM)
        assert [f.rule_id for f in kept] == ['AP001', 'AP004']

    def test_rule_id(self):
        assert [f.rule_id for f in filter_findings(FINDINGS, rule_id='ap006')] == ['AP006']

    def test_findings_by_endpoint_fields(self):
        kept = filter_findings(FINDINGS, route_contains='orders', min_severity=Severity.HIGH)
        assert [f.rule_id for f in kept] == ['AP004']

    def test_inputs_untouched(self):
        before = list(FINDINGS)
        filter_findings(FINDINGS, min_severity=Severity.CRITICAL)
        assert FINDINGS == before


# ---------- Sorting ----------

class TestSort:
    def test_route(self):
        assert sort_endpoints(ENDPOINTS, SortField.ROUTE) == [ADMIN, ORDERS, USERS]

    def test_descending(self):
        assert sort_endpoints(ENDPOINTS, SortField.ROUTE, SortDirection.DESC) == [USERS, ORDERS, ADMIN]

    def test_method(self):
        assert sort_endpoints(ENDPOINTS, SortField.METHOD) == [USERS, ORDERS, ADMIN]

    def test_classification(self):
        assert sort_endpoints(ENDPOINTS, SortField.CLASSIFICATION) == [ORDERS, USERS, ADMIN]

    def test_location(self):
        assert sort_endpoints(ENDPOINTS, SortField.LOCATION) == [ADMIN, USERS, ORDERS]

    def test_controller_missing_first(self):
        assert sort_endpoints(ENDPOINTS, SortField.CONTROLLER)[0] is ADMIN

    def test_endpoint_severity_uses_worst_finding(self):
        ordered = sort_endpoints(ENDPOINTS, SortField.SEVERITY, SortDirection.DESC, FINDINGS)
        assert ordered == [ORDERS, ADMIN, USERS]

    def test_findings_by_severity(self):
        ordered = sort_findings(FINDINGS, SortField.SEVERITY, SortDirection.DESC)
        assert [f.severity for f in ordered] == [
            Severity.CRITICAL, Severity.MEDIUM, Severity.LOW, Severity.INFO]

    def test_findings_by_route(self):
        ordered = sort_findings(FINDINGS, SortField.ROUTE)
        assert [f.endpoint.route for f in ordered] == [
            '/api/admin', '/api/orders', '/api/orders', '/api/users']


# ---------- Grouping ----------

class TestGroup:
    def test_controller_groups(self):
        groups = group_endpoints(ENDPOINTS, GroupField.CONTROLLER)
        assert list(groups) == [NO_CONTROLLER, 'OrderController', 'UserController']

    def test_classification_labels(self):
        groups = group_endpoints(ENDPOINTS, GroupField.CLASSIFICATION)
        assert list(groups) == ['Authenticated', 'Public', 'Role Restricted']

    def test_method_and_type(self):
        assert list(group_endpoints(ENDPOINTS, GroupField.METHOD)) == ['DELETE', 'GET', 'POST']
        assert list(group_endpoints(ENDPOINTS, GroupField.TYPE)) == ['route']

    def test_severity_not_applicable_to_endpoints(self):
        assert list(group_endpoints(ENDPOINTS, GroupField.SEVERITY)) == ['N/A']

    @pytest.mark.parametrize('field, expected', [
        (GroupField.SEVERITY, {'Critical': 1, 'Info': 1, 'Low': 1, 'Medium': 1}),
        (GroupField.CONTROLLER, {NO_CONTROLLER: 1, 'OrderController': 2, 'UserController': 1}),
    ])
    def test_findings(self, field, expected):
        groups = group_findings(FINDINGS, field)
        assert {k: len(v) for k, v in groups.items()} == expected
