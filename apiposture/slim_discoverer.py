#!/usr/bin/env python3
"""
Slim app-object discovery.

Route registrations are method calls like ``$app->get('/x', handler)`` or
``$group->map(['GET', 'POST'], '/x', handler)``. Groups are resolved by line
containment: every ``->group('/prefix', closure)`` call becomes a span, and a
route inherits the prefix and ``->add()`` middleware of every span enclosing it.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .discovery import EndpointDiscoverer, class_ref_name, join_paths, parse_methods, string_list
from .models import AuthorizationInfo, Endpoint, EndpointType, HttpMethod, SourceLocation
from .ts_adapter import TSNode

logger = logging.getLogger(__name__)


VERB_CALLS = {
    'get': (HttpMethod.GET,),
    'post': (HttpMethod.POST,),
    'put': (HttpMethod.PUT,),
    'delete': (HttpMethod.DELETE,),
    'patch': (HttpMethod.PATCH,),
    'any': HttpMethod.all(),
}
ROUTE_CALLS = frozenset(VERB_CALLS) | {'map'}
MEMBER_CALLS = ('member_call_expression', 'nullsafe_member_call_expression')

# Middleware name substrings, matched case-insensitively
AUTH_HINTS = ('auth', 'jwt', 'token', 'session', 'bearer')
ROLE_HINTS = ('role', 'acl')
PERMISSION_HINTS = ('permission', 'policy', 'guard')


@dataclass(frozen=True)
class GroupSpan:
    prefix: str
    middleware: Tuple[str, ...]
    start_line: int
    end_line: int

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


def is_route_path(node: Optional[TSNode]) -> bool:
    if node is None:
        return False
    value = node.string_value()
    return value is not None and (value == '' or value.startswith('/'))


def middleware_name(node: Optional[TSNode]) -> Optional[str]:
    """Name for an ->add() argument: new X(), X::class, 'x' or $x."""
    if node is None:
        return None
    if node.type == 'argument':
        node = node.argument_value()
        if node is None:
            return None
    ref = class_ref_name(node)
    if ref is not None:
        return ref
    value = node.string_value()
    if value is not None:
        return value
    if node.type == 'variable_name':
        return node.text
    return None


def chained_middleware(call: TSNode) -> List[str]:
    """Middleware from ``->add(...)`` calls chained onto a route or group call."""
    names = []
    cur = call
    parent = cur.parent
    while parent is not None and parent.type in MEMBER_CALLS \
            and parent.child_by_field('object') == cur:
        if parent.get_function_name() == 'add':
            for arg in parent.get_arguments():
                name = middleware_name(arg)
                if name is not None and name not in names:
                    names.append(name)
        cur, parent = parent, parent.parent
    return names


def _on_static_facade(call: TSNode) -> bool:
    """True for Route::x()->get(...) chains, which belong to the route-table walker."""
    cur = call.child_by_field('object')
    while cur is not None and cur.type in MEMBER_CALLS:
        cur = cur.child_by_field('object')
    return cur is not None and cur.type == 'scoped_call_expression'


def resolve_middleware(middleware: Tuple[str, ...]) -> AuthorizationInfo:
    has_auth = False
    for name in middleware:
        lower = name.lower()
        if any(h in lower for h in AUTH_HINTS + ROLE_HINTS + PERMISSION_HINTS):
            has_auth = True
    return AuthorizationInfo(has_auth=has_auth, middleware=middleware)


class SlimEndpointDiscoverer(EndpointDiscoverer):
    name = 'slim'

    def supports(self, root: TSNode, file_path: str) -> bool:
        for call in root.find_all(*MEMBER_CALLS):
            if self._route_call(call) is not None:
                return True
            if call.get_function_name() == 'group':
                args = call.get_arguments()
                if len(args) >= 2 and is_route_path(args[0]):
                    return True
        return False

    def discover(self, root: TSNode, file_path: str) -> List[Endpoint]:
        groups = self.group_spans(root)
        endpoints = []
        for call in root.find_all(*MEMBER_CALLS):
            parsed = self._route_call(call)
            if parsed is None:
                continue
            path, methods = parsed
            enclosing = [g for g in groups if g.contains(call.line)]
            prefixes = [g.prefix for g in enclosing]
            middleware: List[str] = []
            for name in [m for g in enclosing for m in g.middleware] + chained_middleware(call):
                if name not in middleware:
                    middleware.append(name)
            route = join_paths(*prefixes, path) if any(prefixes) else (path or '/')
            endpoints.append(Endpoint(
                route=route,
                methods=methods,
                type=EndpointType.ROUTE,
                location=SourceLocation(file_path, call.line, call.column),
                authorization=resolve_middleware(tuple(middleware)),
            ))
        logger.debug("slim: %d endpoint(s), %d group(s) in %s",
                     len(endpoints), len(groups), file_path)
        return endpoints

    @staticmethod
    def group_spans(root: TSNode) -> List[GroupSpan]:
        """Flat list of group spans, outermost first."""
        spans = []
        for call in root.find_all(*MEMBER_CALLS):
            if call.get_function_name() != 'group':
                continue
            args = call.get_arguments()
            if len(args) < 2:
                continue
            prefix = args[0].string_value()
            spans.append(GroupSpan(
                prefix=prefix or '',
                middleware=tuple(chained_middleware(call)),
                start_line=call.line,
                end_line=call.end_line,
            ))
        spans.sort(key=lambda s: (s.start_line, -s.end_line))
        return spans

    @staticmethod
    def _route_call(call: TSNode) -> Optional[Tuple[str, Tuple[HttpMethod, ...]]]:
        name = call.get_function_name()
        if name not in ROUTE_CALLS or _on_static_facade(call):
            return None
        args = call.get_arguments()
        if name == 'map':
            if len(args) < 3 or args[0].argument_value() is None \
                    or args[0].argument_value().type != 'array_creation_expression':
                return None
            if not is_route_path(args[1]):
                return None
            methods = tuple(parse_methods(string_list(args[0])))
            if not methods:
                return None
            return args[1].string_value(), methods
        if len(args) < 2 or not is_route_path(args[0]):
            return None
        return args[0].string_value(), VERB_CALLS[name]
