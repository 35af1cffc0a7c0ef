#!/usr/bin/env python3
"""
Built-in API posture rules AP001-AP008.
"""

from typing import List

from .models import Endpoint, Finding, SecurityClassification, Severity, InheritedFrom
from .rule_engine import SecurityRule


# Route substrings that soften AP002 for endpoints that must accept anonymous writes
WEBHOOK_PATTERNS = ('webhook', 'hook', 'callback', 'notify', 'ipn')
AUTH_PATTERNS = ('login', 'register', 'signup', 'signin', 'token', 'oauth',
                 'auth', 'password', 'reset', 'forgot')
ANALYTICS_PATTERNS = ('analytics', 'tracking', 'counter', 'metrics',
                      'telemetry', 'ping', 'heartbeat')

MAX_ROLES = 3

WEAK_ROLES = (
    'user', 'admin', 'guest', 'member', 'manager', 'superuser',
    'super_admin', 'superadmin', 'root', 'default', 'basic',
    'ROLE_USER', 'ROLE_ADMIN',
)

SENSITIVE_KEYWORDS = (
    'admin', 'debug', 'export', 'internal', 'secret',
    'config', 'configuration', 'settings', 'system',
    'manage', 'management', 'dashboard', 'panel',
    'backup', 'dump', 'migrate', 'seed',
    'impersonate', 'sudo', 'elevate',
    'private', 'restricted', 'confidential',
)


def normalize_role(role: str) -> str:
    return role.replace('ROLE_', '').replace('-', '').replace('_', '').lower()


_WEAK_NORMALIZED = frozenset(normalize_role(r) for r in WEAK_ROLES)


class PublicWithoutExplicitIntent(SecurityRule):
    rule_id = 'AP001'
    name = 'Public Without Explicit Intent'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        auth = endpoint.authorization
        if endpoint.classification is not SecurityClassification.PUBLIC:
            return []
        if auth.has_allow_anonymous or auth.has_auth:
            return []
        return [self.finding(
            endpoint, Severity.MEDIUM,
            f"Endpoint '{endpoint.route}' is publicly accessible without explicit anonymous intent.",
            "Add explicit guest/AllowAnonymous middleware to confirm this endpoint "
            "is intentionally public, or add authentication.",
        )]


class AllowAnonymousOnWrite(SecurityRule):
    rule_id = 'AP002'
    name = 'Allow Anonymous on Write'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        auth = endpoint.authorization
        if not endpoint.has_write_methods():
            return []
        if auth.has_auth and not auth.has_allow_anonymous:
            return []
        severity = self.severity_for(endpoint.route)
        return [self.finding(
            endpoint, severity,
            f"Write endpoint '{endpoint.route}' ({endpoint.methods_string()}) is publicly accessible.",
            self.recommendation_for(severity),
        )]

    @staticmethod
    def severity_for(route: str) -> Severity:
        route = route.lower()
        if any(p in route for p in WEBHOOK_PATTERNS):
            return Severity.MEDIUM
        if any(p in route for p in AUTH_PATTERNS + ANALYTICS_PATTERNS):
            return Severity.LOW
        return Severity.HIGH

    @staticmethod
    def recommendation_for(severity: Severity) -> str:
        if severity == Severity.LOW:
            return "This appears to be an auth/analytics endpoint. Verify this is intentionally public."
        if severity == Severity.MEDIUM:
            return ("This appears to be a webhook endpoint. Consider adding signature "
                    "verification or IP allowlisting.")
        return "Add authentication to this write endpoint, or explicitly document why it must be public."


class ControllerActionConflict(SecurityRule):
    rule_id = 'AP003'
    name = 'Controller-Action Auth Conflict'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        auth = endpoint.authorization
        if auth.inherited_from is InheritedFrom.NONE or not auth.has_allow_anonymous:
            return []
        action = endpoint.action_name or endpoint.route
        controller = endpoint.controller_name or '-'
        if auth.inherited_from is InheritedFrom.CONTROLLER:
            return [self.finding(
                endpoint, Severity.HIGH,
                f"Action '{action}' on '{controller}' overrides controller-level auth with anonymous access.",
                "Review whether this action should bypass controller-level authentication. "
                "If intentional, document the reason.",
            )]
        return [self.finding(
            endpoint, Severity.HIGH,
            f"Action '{action}' on '{controller}' weakens class-level security.",
            "Ensure the action-level override is intentional and documented.",
        )]


class MissingAuthOnWrites(SecurityRule):
    rule_id = 'AP004'
    name = 'Missing Auth on Writes'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        auth = endpoint.authorization
        if not endpoint.has_write_methods():
            return []
        if auth.has_auth or auth.has_allow_anonymous or auth.middleware:
            return []
        # roles or policies alone are a protection signal
        if auth.roles or auth.policies:
            return []
        return [self.finding(
            endpoint, Severity.CRITICAL,
            f"Write endpoint '{endpoint.route}' ({endpoint.methods_string()}) "
            f"has no authentication whatsoever.",
            "Add authentication middleware to this write endpoint immediately. "
            "Unprotected write endpoints are a critical security risk.",
        )]


class ExcessiveRoleAccess(SecurityRule):
    rule_id = 'AP005'
    name = 'Excessive Role Access'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        count = len(endpoint.authorization.roles)
        if count <= MAX_ROLES:
            return []
        return [self.finding(
            endpoint, Severity.MEDIUM,
            f"Endpoint '{endpoint.route}' has {count} roles assigned (threshold: {MAX_ROLES}).",
            "Consider consolidating roles or creating a role hierarchy. "
            "Too many roles on one endpoint may indicate overly broad access.",
        )]


class WeakRoleNaming(SecurityRule):
    rule_id = 'AP006'
    name = 'Weak Role Naming'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        weak = [r for r in endpoint.authorization.roles if normalize_role(r) in _WEAK_NORMALIZED]
        if not weak:
            return []
        return [self.finding(
            endpoint, Severity.LOW,
            f"Endpoint '{endpoint.route}' uses generic role names: {', '.join(weak)}.",
            "Use more specific, descriptive role names that reflect actual business "
            "permissions (e.g., 'invoice_manager' instead of 'admin').",
        )]


class SensitiveRouteKeywords(SecurityRule):
    rule_id = 'AP007'
    name = 'Sensitive Route Keywords'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        route = endpoint.route.lower()
        found = [k for k in SENSITIVE_KEYWORDS if k in route]
        if not found:
            return []
        if endpoint.authorization.has_auth:
            severity = Severity.LOW
            recommendation = ("Ensure the authorization level matches the sensitivity "
                              "implied by the route keywords.")
        else:
            severity = Severity.HIGH
            recommendation = ("This route contains sensitive keywords but has no "
                              "authentication. Add appropriate auth controls.")
        return [self.finding(
            endpoint, severity,
            f"Route '{endpoint.route}' contains sensitive keywords: {', '.join(found)}.",
            recommendation,
        )]


class UnprotectedEndpoint(SecurityRule):
    rule_id = 'AP008'
    name = 'Unprotected Endpoint'

    def evaluate(self, endpoint: Endpoint) -> List[Finding]:
        auth = endpoint.authorization
        if auth.has_auth or auth.has_allow_anonymous:
            return []
        # any middleware, role or policy is some protection signal
        if auth.middleware or auth.roles or auth.policies:
            return []
        severity = Severity.HIGH if endpoint.has_write_methods() else Severity.INFO
        return [self.finding(
            endpoint, severity,
            f"Endpoint '{endpoint.route}' ({endpoint.methods_string()}) has no auth middleware.",
            "Add authentication middleware or explicitly mark as public/guest to "
            "indicate intentional public access.",
        )]


def default_rules() -> List[SecurityRule]:
    return [
        PublicWithoutExplicitIntent(),
        AllowAnonymousOnWrite(),
        ControllerActionConflict(),
        MissingAuthOnWrites(),
        ExcessiveRoleAccess(),
        WeakRoleNaming(),
        SensitiveRouteKeywords(),
        UnprotectedEndpoint(),
    ]
