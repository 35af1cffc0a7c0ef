#!/usr/bin/env python3
"""
Symfony attribute-style discovery.

Reads ``#[Route]`` attributes on controller classes and their public methods,
and ``#[IsGranted]`` / ``#[Security]`` attributes for authorization. A class
level route supplies the path prefix; class level security applies to every
action unless the action declares its own.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .discovery import (
    Attribute, EndpointDiscoverer, attributes_of, class_methods, class_name,
    is_public_method, iter_classes, join_paths, method_name, parent_class_name,
    parse_methods, string_list,
)
from .models import (
    AuthorizationInfo, Endpoint, EndpointType, HttpMethod, InheritedFrom,
    SourceLocation,
)
from .ts_adapter import TSNode

logger = logging.getLogger(__name__)


ROUTE_ATTRIBUTES = frozenset({
    'Route',
    'Symfony\\Component\\Routing\\Annotation\\Route',
    'Symfony\\Component\\Routing\\Attribute\\Route',
})
IS_GRANTED_ATTRIBUTES = frozenset({
    'IsGranted',
    'Symfony\\Component\\Security\\Http\\Attribute\\IsGranted',
    'Sensio\\Bundle\\FrameworkExtraBundle\\Configuration\\IsGranted',
})
SECURITY_ATTRIBUTES = frozenset({
    'Security',
    'Sensio\\Bundle\\FrameworkExtraBundle\\Configuration\\Security',
})

ROLE_PREFIX = 'ROLE_'
ROLE_TOKEN = re.compile(r'ROLE_[A-Z_]+')
PUBLIC_ACCESS_TOKENS = ('IS_AUTHENTICATED_ANONYMOUSLY', 'PUBLIC_ACCESS')
# IsGranted subjects that only require a logged-in user
AUTHENTICATED_TOKENS = frozenset({
    'IS_AUTHENTICATED', 'IS_AUTHENTICATED_FULLY', 'IS_AUTHENTICATED_REMEMBERED',
})


@dataclass
class SecurityDescriptor:
    has_auth: bool = False
    allow_anonymous: bool = False
    roles: List[str] = field(default_factory=list)
    policies: List[str] = field(default_factory=list)


def is_route_attribute(attr: Attribute) -> bool:
    return attr.full_name in ROUTE_ATTRIBUTES


def read_security(attrs: List[Attribute]) -> SecurityDescriptor:
    """Fold IsGranted/Security attributes into one descriptor."""
    desc = SecurityDescriptor()
    public = False
    for attr in attrs:
        if attr.full_name in IS_GRANTED_ATTRIBUTES:
            subject = attr.arg(0, 'attribute')
            value = subject.string_value() if subject is not None else None
            if subject is not None and value is None and subject.type == 'object_creation_expression':
                # IsGranted(new Expression('...'))
                inner = subject.get_arguments()
                value = inner[0].string_value() if inner else None
                if value is not None:
                    public |= _scan_expression(value, desc)
                    continue
            desc.has_auth = True
            if not value or value in AUTHENTICATED_TOKENS:
                continue
            if value in PUBLIC_ACCESS_TOKENS:
                public = True
            elif value.startswith(ROLE_PREFIX):
                desc.roles.append(value)
            else:
                desc.policies.append(value)
        elif attr.full_name in SECURITY_ATTRIBUTES:
            expr = attr.arg(0, 'expression')
            value = expr.string_value() if expr is not None else None
            public |= _scan_expression(value or '', desc)
    if public:
        desc.allow_anonymous = True
        desc.has_auth = False
    return desc


def _scan_expression(expression: str, desc: SecurityDescriptor) -> bool:
    """Scan a security expression; returns True for a public-access idiom."""
    desc.has_auth = True
    for role in ROLE_TOKEN.findall(expression):
        if role not in desc.roles:
            desc.roles.append(role)
    return any(token in expression for token in PUBLIC_ACCESS_TOKENS)


def merge_security(class_sec: SecurityDescriptor, method_sec: SecurityDescriptor) -> AuthorizationInfo:
    inherited = InheritedFrom.NONE
    if class_sec.has_auth and not method_sec.has_auth:
        inherited = InheritedFrom.CLASS
    return AuthorizationInfo(
        has_auth=class_sec.has_auth or method_sec.has_auth,
        has_allow_anonymous=method_sec.allow_anonymous
        or (class_sec.allow_anonymous and not method_sec.has_auth),
        roles=class_sec.roles + method_sec.roles,
        policies=class_sec.policies + method_sec.policies,
        middleware=(),
        inherited_from=inherited,
    )


def _route_path(attr: Attribute) -> Optional[str]:
    node = attr.arg(0, 'path')
    if node is None:
        return ''
    return node.string_value()


def _route_methods(attr: Attribute) -> List[HttpMethod]:
    node = attr.arg(None, 'methods')
    methods = parse_methods(string_list(node)) if node is not None else []
    return methods or [HttpMethod.GET]


class SymfonyEndpointDiscoverer(EndpointDiscoverer):
    name = 'symfony'

    def supports(self, root: TSNode, file_path: str) -> bool:
        return any(self._is_controller(cls) for cls in iter_classes(root))

    @staticmethod
    def _is_controller(cls: TSNode) -> bool:
        if parent_class_name(cls).endswith('Controller'):
            return True
        if any(is_route_attribute(a) for a in attributes_of(cls)):
            return True
        return any(is_route_attribute(a)
                   for m in class_methods(cls) for a in attributes_of(m))

    def discover(self, root: TSNode, file_path: str) -> List[Endpoint]:
        endpoints: List[Endpoint] = []
        for cls in iter_classes(root):
            if self._is_controller(cls):
                endpoints.extend(self._discover_class(cls, file_path))
        logger.debug("symfony: %d endpoint(s) in %s", len(endpoints), file_path)
        return endpoints

    def _discover_class(self, cls: TSNode, file_path: str) -> List[Endpoint]:
        controller = class_name(cls)
        class_attrs = attributes_of(cls)
        prefix = ''
        for attr in class_attrs:
            if is_route_attribute(attr):
                prefix = _route_path(attr) or ''
                break
        class_sec = read_security(class_attrs)

        endpoints = []
        for method in class_methods(cls):
            action = method_name(method)
            if action == '__construct' or not is_public_method(method):
                continue
            attrs = attributes_of(method)
            routes = [a for a in attrs if is_route_attribute(a)]
            if not routes:
                continue
            auth = merge_security(class_sec, read_security(attrs))
            for attr in routes:
                path = _route_path(attr)
                if path is None:
                    logger.debug("Skipping non-literal route path on %s::%s", controller, action)
                    continue
                endpoints.append(Endpoint(
                    route=join_paths(prefix, path),
                    methods=tuple(_route_methods(attr)),
                    type=EndpointType.ANNOTATION,
                    location=SourceLocation(file_path, method.line, method.column),
                    authorization=auth,
                    controller_name=controller,
                    action_name=action,
                ))
        return endpoints
