#!/usr/bin/env python3
"""
Tests for apiposture/security_rules.py - the built-in AP001-AP008 rules.

Endpoints are classified before evaluation, as the analyzer does.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apiposture.classifier import SecurityClassifier
from apiposture.models import (
    AuthorizationInfo, Endpoint, EndpointType, HttpMethod, InheritedFrom,
    SourceLocation, Severity,
)
from apiposture.security_rules import (
    AllowAnonymousOnWrite, ControllerActionConflict, ExcessiveRoleAccess,
    MissingAuthOnWrites, PublicWithoutExplicitIntent, SensitiveRouteKeywords,
    UnprotectedEndpoint, WeakRoleNaming, default_rules,
)

_classifier = SecurityClassifier()

GET = (HttpMethod.GET,)
POST = (HttpMethod.POST,)


def make_endpoint(route='/api/test', methods=GET, controller=None, action=None, **auth):
    ep = Endpoint(
        route=route,
        methods=methods,
        type=EndpointType.ROUTE,
        location=SourceLocation('routes/api.php', 3),
        authorization=AuthorizationInfo(**auth),
        controller_name=controller,
        action_name=action,
    )
    return ep.with_classification(_classifier.classify(ep))


def fired(endpoint):
    """{rule_id: severity} over all default rules."""
    return {f.rule_id: f.severity for rule in default_rules() for f in rule.evaluate(endpoint)}


# ---------- Individual rules ----------

class TestAP001:
    rule = PublicWithoutExplicitIntent()

    def test_flags_implicit_public(self):
        findings = self.rule.evaluate(make_endpoint())
        assert len(findings) == 1
        assert findings[0].severity is Severity.MEDIUM
        assert "'/api/test'" in findings[0].message

    def test_skips_explicit_anonymous(self):
        assert self.rule.evaluate(make_endpoint(has_allow_anonymous=True)) == []

    def test_skips_authenticated(self):
        assert self.rule.evaluate(make_endpoint(has_auth=True)) == []


class TestAP002:
    rule = AllowAnonymousOnWrite()

    def test_skips_read_only(self):
        assert self.rule.evaluate(make_endpoint()) == []

    def test_skips_authenticated_write(self):
        assert self.rule.evaluate(make_endpoint(methods=POST, has_auth=True)) == []

    def test_flags_auth_with_anonymous_override(self):
        ep = make_endpoint(methods=POST, has_auth=True, has_allow_anonymous=True)
        assert len(self.rule.evaluate(ep)) == 1

    @pytest.mark.parametrize('route, severity', [
        ('/api/orders', Severity.HIGH),
        ('/api/webhook/stripe', Severity.MEDIUM),
        ('/paypal/ipn', Severity.MEDIUM),
        ('/api/auth/login', Severity.LOW),
        ('/password/forgot', Severity.LOW),
        ('/api/telemetry', Severity.LOW),
    ])
    def test_severity_buckets(self, route, severity):
        findings = self.rule.evaluate(make_endpoint(route=route, methods=POST))
        assert findings[0].severity is severity

    def test_webhook_bucket_checked_first(self):
        """'/oauth/callback' matches both buckets; webhook wins."""
        findings = self.rule.evaluate(make_endpoint(route='/oauth/callback', methods=POST))
        assert findings[0].severity is Severity.MEDIUM
        assert 'webhook' in findings[0].recommendation

    def test_message_lists_methods(self):
        ep = make_endpoint(methods=(HttpMethod.PUT, HttpMethod.DELETE))
        assert '(PUT, DELETE)' in self.rule.evaluate(ep)[0].message


class TestAP003:
    rule = ControllerActionConflict()

    def test_controller_override(self):
        ep = make_endpoint(controller='UserController', action='publicProfile',
                           has_auth=True, has_allow_anonymous=True,
                           inherited_from=InheritedFrom.CONTROLLER)
        findings = self.rule.evaluate(ep)
        assert len(findings) == 1
        assert findings[0].severity is Severity.HIGH
        assert 'controller-level' in findings[0].message

    def test_class_override(self):
        ep = make_endpoint(controller='AdminController', action='status',
                           has_auth=True, has_allow_anonymous=True,
                           inherited_from=InheritedFrom.CLASS)
        findings = self.rule.evaluate(ep)
        assert len(findings) == 1
        assert 'class-level' in findings[0].message

    def test_skips_no_inheritance(self):
        ep = make_endpoint(has_auth=True, has_allow_anonymous=True)
        assert self.rule.evaluate(ep) == []

    def test_skips_consistent_auth(self):
        ep = make_endpoint(has_auth=True, inherited_from=InheritedFrom.CLASS)
        assert self.rule.evaluate(ep) == []


class TestAP004:
    rule = MissingAuthOnWrites()

    def test_flags_write_without_any_signal(self):
        findings = self.rule.evaluate(make_endpoint(methods=POST))
        assert findings[0].severity is Severity.CRITICAL

    @pytest.mark.parametrize('auth', [
        {'has_auth': True},
        {'has_allow_anonymous': True},
        {'middleware': ('throttle:60,1',)},
    ])
    def test_any_signal_skips(self, auth):
        assert self.rule.evaluate(make_endpoint(methods=POST, **auth)) == []

    def test_skips_reads(self):
        assert self.rule.evaluate(make_endpoint()) == []


class TestAP005:
    rule = ExcessiveRoleAccess()

    def test_three_roles_ok(self):
        assert self.rule.evaluate(make_endpoint(has_auth=True, roles=['a', 'b', 'c'])) == []

    def test_four_roles_flagged(self):
        findings = self.rule.evaluate(make_endpoint(has_auth=True, roles=['a', 'b', 'c', 'd']))
        assert findings[0].severity is Severity.MEDIUM
        assert '4 roles' in findings[0].message


class TestAP006:
    rule = WeakRoleNaming()

    @pytest.mark.parametrize('role', ['admin', 'ROLE_ADMIN', 'Super-Admin', 'ROLE_SUPER_ADMIN', 'user'])
    def test_weak_roles(self, role):
        findings = self.rule.evaluate(make_endpoint(has_auth=True, roles=[role]))
        assert findings[0].severity is Severity.LOW
        assert role in findings[0].message

    def test_specific_roles_pass(self):
        ep = make_endpoint(has_auth=True, roles=['invoice_manager', 'ROLE_BILLING'])
        assert self.rule.evaluate(ep) == []

    def test_lists_only_weak_roles(self):
        ep = make_endpoint(has_auth=True, roles=['editor', 'admin', 'root'])
        assert self.rule.evaluate(ep)[0].message.endswith('admin, root.')


class TestAP007:
    rule = SensitiveRouteKeywords()

    def test_lists_all_keywords(self):
        findings = self.rule.evaluate(make_endpoint(route='/Admin/Config/Export'))
        assert 'admin, export, config' in findings[0].message

    def test_no_keywords(self):
        assert self.rule.evaluate(make_endpoint(route='/api/products')) == []


class TestAP008:
    rule = UnprotectedEndpoint()

    def test_read_is_info(self):
        assert self.rule.evaluate(make_endpoint())[0].severity is Severity.INFO

    def test_write_is_high(self):
        assert self.rule.evaluate(make_endpoint(methods=POST))[0].severity is Severity.HIGH

    @pytest.mark.parametrize('auth', [
        {'has_auth': True},
        {'has_allow_anonymous': True},
        {'middleware': ('throttle',)},
        {'roles': ('editor',)},
        {'policies': ('edit',)},
    ])
    def test_any_signal_skips(self, auth):
        assert self.rule.evaluate(make_endpoint(**auth)) == []


# ---------- Scenarios ----------

class TestScenarios:
    def test_public_get_route(self):
        """GET without middleware: AP001 and informational AP008 only."""
        ep = make_endpoint(route='/api/users', controller='UserController', action='index')
        assert fired(ep) == {'AP001': Severity.MEDIUM, 'AP008': Severity.INFO}

    def test_unprotected_post_route(self):
        ep = make_endpoint(route='/api/feedback', methods=POST)
        assert fired(ep) == {
            'AP001': Severity.MEDIUM,
            'AP002': Severity.HIGH,
            'AP004': Severity.CRITICAL,
            'AP008': Severity.HIGH,
        }

    def test_authenticated_group_route(self):
        ep = make_endpoint(route='/api/users', has_auth=True, middleware=('auth:sanctum',))
        assert fired(ep) == {}

    def test_sensitive_keywords_follow_auth(self):
        public = fired(make_endpoint(route='/api/admin/dashboard'))
        private = fired(make_endpoint(route='/api/admin/dashboard', has_auth=True))
        assert public['AP007'] is Severity.HIGH
        assert private == {'AP007': Severity.LOW}

    def test_class_grant_with_public_override(self):
        ep = make_endpoint(controller='AdminController', action='ping',
                           has_auth=True, has_allow_anonymous=True, roles=['ROLE_ADMIN'],
                           inherited_from=InheritedFrom.CLASS)
        assert fired(ep)['AP003'] is Severity.HIGH


class TestProperties:
    @pytest.mark.parametrize('methods', [GET, POST, (HttpMethod.PUT, HttpMethod.PATCH)])
    @pytest.mark.parametrize('auth', [
        {}, {'has_auth': True}, {'has_allow_anonymous': True},
        {'middleware': ('cors',)}, {'roles': ('editor',)}, {'policies': ('edit',)},
    ])
    def test_ap004_implies_high_ap008(self, methods, auth):
        result = fired(make_endpoint(methods=methods, **auth))
        if 'AP004' in result:
            assert result.get('AP008') is Severity.HIGH

    def test_rules_are_pure(self):
        ep = make_endpoint(route='/api/admin', methods=POST)
        assert fired(ep) == fired(ep)

    def test_default_rule_order(self):
        assert [r.rule_id for r in default_rules()] == [
            'AP001', 'AP002', 'AP003', 'AP004', 'AP005', 'AP006', 'AP007', 'AP008']
