#!/usr/bin/env python3
"""
Fallback discovery for framework-less PHP scripts.

A script that reads request superglobals is itself an endpoint, routed by its
file name. HTTP verbs are inferred from which superglobals it reads and from
REQUEST_METHOD comparisons; authentication from session keys that look like a
logged-in user check.
"""

import logging
import os
from typing import List, Optional, Set

from .discovery import EndpointDiscoverer, has_static_call_on
from .models import AuthorizationInfo, Endpoint, EndpointType, HttpMethod, SourceLocation, UnknownEnumValue
from .ts_adapter import TSNode

logger = logging.getLogger(__name__)


HTTP_SUPERGLOBALS = frozenset({'$_POST', '$_GET', '$_REQUEST', '$_SERVER', '$_FILES'})
SESSION_AUTH_KEYS = ('user', 'auth', 'logged', 'login', 'uid', 'account', 'member')
COMPARISON_OPERATORS = frozenset({'==', '===', '!=', '!==', '<>'})


def _subscript_parts(node: TSNode):
    """(variable, index) of ``$var['key']``."""
    named = node.named_children
    if len(named) < 2:
        return None, None
    return named[0], named[1]


def _subscript_key(node: TSNode) -> Optional[str]:
    var, index = _subscript_parts(node)
    if index is None:
        return None
    return index.string_value()


def is_request_method_access(node: Optional[TSNode]) -> bool:
    """``$_SERVER['REQUEST_METHOD']``"""
    if node is None or node.type != 'subscript_expression':
        return False
    var, _ = _subscript_parts(node)
    return var is not None and var.text == '$_SERVER' and _subscript_key(node) == 'REQUEST_METHOD'


def _strip_parens(node: Optional[TSNode]) -> Optional[TSNode]:
    while node is not None and node.type == 'parenthesized_expression':
        named = node.named_children
        node = named[0] if named else None
    return node


def _verb(value: Optional[str]) -> Optional[HttpMethod]:
    if not value:
        return None
    try:
        return HttpMethod.from_string(value)
    except UnknownEnumValue:
        return None


class PlainPhpEndpointDiscoverer(EndpointDiscoverer):
    name = 'plain'

    def supports(self, root: TSNode, file_path: str) -> bool:
        if has_static_call_on(root, 'Route'):
            return False
        return any(n.text in HTTP_SUPERGLOBALS for n in root.find_all('variable_name'))

    def discover(self, root: TSNode, file_path: str) -> List[Endpoint]:
        methods = self.infer_methods(root)
        has_auth = self.has_session_auth(root)
        endpoint = Endpoint(
            route='/' + os.path.basename(file_path),
            methods=tuple(methods),
            type=EndpointType.FILE,
            location=SourceLocation(file_path, 1),
            authorization=AuthorizationInfo(
                has_auth=has_auth,
                has_allow_anonymous=not has_auth,
            ),
        )
        logger.debug("plain: %s -> %s [%s]", file_path, endpoint.route, endpoint.methods_string())
        return [endpoint]

    def infer_methods(self, root: TSNode) -> List[HttpMethod]:
        found: Set[HttpMethod] = set()
        for node in root.walk_descendants():
            if node.type == 'binary_expression':
                found.update(self._compared_methods(node))
            elif node.type == 'switch_statement':
                found.update(self._switch_methods(node))
            elif node.type == 'subscript_expression':
                var, _ = _subscript_parts(node)
                name = var.text if var is not None else ''
                if name == '$_POST':
                    found.add(HttpMethod.POST)
                elif name == '$_GET':
                    found.add(HttpMethod.GET)
                elif name == '$_REQUEST':
                    found.update((HttpMethod.GET, HttpMethod.POST))
            elif node.type == 'variable_name' and node.text == '$_FILES':
                found.add(HttpMethod.POST)
        if not found:
            found.add(HttpMethod.GET)
        return [m for m in HttpMethod.all() if m in found]

    @staticmethod
    def _compared_methods(node: TSNode) -> List[HttpMethod]:
        operator = node.child_by_field('operator')
        if operator is None or operator.text not in COMPARISON_OPERATORS:
            return []
        left = _strip_parens(node.child_by_field('left'))
        right = _strip_parens(node.child_by_field('right'))
        if is_request_method_access(left):
            other = right
        elif is_request_method_access(right):
            other = left
        else:
            return []
        verb = _verb(other.string_value() if other is not None else None)
        return [verb] if verb is not None else []

    @staticmethod
    def _switch_methods(node: TSNode) -> List[HttpMethod]:
        condition = _strip_parens(node.child_by_field('condition'))
        if not is_request_method_access(condition):
            return []
        body = node.child_by_field('body')
        if body is None:
            return []
        verbs = []
        for case in body.named_children:
            if case.type != 'case_statement':
                continue
            value = case.child_by_field('value')
            verb = _verb(value.string_value() if value is not None else None)
            if verb is not None:
                verbs.append(verb)
        return verbs

    @staticmethod
    def has_session_auth(root: TSNode) -> bool:
        for node in root.find_all('subscript_expression'):
            var, _ = _subscript_parts(node)
            if var is None or var.text != '$_SESSION':
                continue
            key = _subscript_key(node)
            if key and any(k in key.lower() for k in SESSION_AUTH_KEYS):
                return True
        return False
