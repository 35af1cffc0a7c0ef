#!/usr/bin/env python3
"""
Security classification of discovered endpoints.
"""

from typing import Iterable, List

from .models import AuthorizationInfo, Endpoint, SecurityClassification


class SecurityClassifier:
    """Maps an endpoint's AuthorizationInfo onto its exposure tier.

    Precedence: explicit anonymous access or no signal at all is Public,
    then any policy, then any role, then plain authentication.
    """

    def classify_auth(self, auth: AuthorizationInfo) -> SecurityClassification:
        if auth.has_allow_anonymous:
            return SecurityClassification.PUBLIC
        if not auth.has_auth and not auth.roles and not auth.policies:
            return SecurityClassification.PUBLIC
        if auth.policies:
            return SecurityClassification.POLICY_RESTRICTED
        if auth.roles:
            return SecurityClassification.ROLE_RESTRICTED
        if auth.has_auth:
            return SecurityClassification.AUTHENTICATED
        return SecurityClassification.PUBLIC

    def classify(self, endpoint: Endpoint) -> SecurityClassification:
        return self.classify_auth(endpoint.authorization)

    def classify_all(self, endpoints: Iterable[Endpoint]) -> List[Endpoint]:
        """Return classified copies of the endpoints, in the same order."""
        return [ep.with_classification(self.classify(ep)) for ep in endpoints]
