#!/usr/bin/env python3
"""
Endpoint discovery contract and shared tree helpers.

Each discoverer recognizes one routing idiom in a parsed PHP file. The
analyzer runs every discoverer whose ``supports()`` accepts the file and
concatenates their results, so a file may be claimed by more than one.
"""

import re
from typing import Dict, Iterator, List, Optional, Tuple

from .models import Endpoint, HttpMethod, UnknownEnumValue
from .ts_adapter import TSNode, strip_namespace


_MULTI_SLASH = re.compile(r'/{2,}')


class EndpointDiscoverer:
    """Strategy interface implemented by every framework walker."""

    name = 'base'

    def supports(self, root: TSNode, file_path: str) -> bool:
        raise NotImplementedError

    def discover(self, root: TSNode, file_path: str) -> List[Endpoint]:
        raise NotImplementedError

    def __repr__(self):
        return f'{type(self).__name__}()'


def default_discoverers() -> List[EndpointDiscoverer]:
    """The fixed discoverer set, fallback last."""
    from .laravel_discoverer import LaravelEndpointDiscoverer
    from .symfony_discoverer import SymfonyEndpointDiscoverer
    from .slim_discoverer import SlimEndpointDiscoverer
    from .plain_php_discoverer import PlainPhpEndpointDiscoverer
    return [
        LaravelEndpointDiscoverer(),
        SymfonyEndpointDiscoverer(),
        SlimEndpointDiscoverer(),
        PlainPhpEndpointDiscoverer(),
    ]


# ── Paths ────────────────────────────────────────────────────────────────

def join_paths(*parts: str) -> str:
    """Slash-join route fragments.

    '/api' + '/users' and '/api/' + 'users' both give '/api/users'. Empty
    fragments are skipped; a bare '/' fragment keeps a trailing slash.
    """
    joined = ''
    for part in parts:
        if not part:
            continue
        joined = joined.rstrip('/') + '/' + part.lstrip('/')
    joined = _MULTI_SLASH.sub('/', joined)
    return joined or '/'


# ── Literals ─────────────────────────────────────────────────────────────

def class_ref_name(node: Optional[TSNode]) -> Optional[str]:
    """Short class name from ``X::class`` or ``new X()``."""
    if node is None:
        return None
    if node.type == 'argument':
        node = node.argument_value()
        if node is None:
            return None
    if node.type == 'class_constant_access_expression':
        named = node.named_children
        if len(named) >= 2 and named[-1].text == 'class':
            return strip_namespace(named[0].text)
    elif node.type == 'object_creation_expression':
        ref = node.first_child_of_type('name', 'qualified_name')
        if ref is not None:
            return strip_namespace(ref.text)
    return None


def array_items(node: Optional[TSNode]) -> List[Tuple[Optional[TSNode], TSNode]]:
    """(key, value) pairs of an array literal; key is None for list items."""
    if node is None:
        return []
    if node.type == 'argument':
        node = node.argument_value()
    if node is None or node.type != 'array_creation_expression':
        return []
    items = []
    for element in node.named_children:
        if element.type != 'array_element_initializer':
            continue
        named = element.named_children
        if len(named) >= 2:
            items.append((named[0], named[-1]))
        elif named:
            items.append((None, named[0]))
    return items


def array_dict(node: Optional[TSNode]) -> Dict[str, TSNode]:
    """String-keyed entries of an array literal."""
    result = {}
    for key, value in array_items(node):
        if key is None:
            continue
        k = key.string_value()
        if k is not None:
            result[k] = value
    return result


def string_list(node: Optional[TSNode]) -> List[str]:
    """Strings from a literal, a class reference, or an array of either."""
    if node is None:
        return []
    if node.type == 'argument':
        node = node.argument_value()
        if node is None:
            return []
    value = node.string_value()
    if value is not None:
        return [value]
    ref = class_ref_name(node)
    if ref is not None:
        return [ref]
    if node.type == 'array_creation_expression':
        out = []
        for _, item in array_items(node):
            out.extend(string_list(item))
        return out
    return []


def parse_methods(values: List[str]) -> List[HttpMethod]:
    """Verb strings to HttpMethods; 'ANY' and '*' mean all, unknown verbs are skipped."""
    methods = []
    for v in values:
        if v.strip().upper() in ('ANY', '*'):
            methods.extend(HttpMethod.all())
            continue
        try:
            methods.append(HttpMethod.from_string(v))
        except UnknownEnumValue:
            continue
    return methods


def split_arguments(args: List[TSNode]) -> Tuple[List[TSNode], Dict[str, TSNode]]:
    """Split call/attribute arguments into positional values and named values."""
    positional = []
    named = {}
    for arg in args:
        value = arg.argument_value()
        if value is None:
            continue
        label = arg.argument_name()
        if label is None:
            positional.append(value)
        else:
            named[label] = value
    return positional, named


# ── Declarations ─────────────────────────────────────────────────────────

class Attribute:
    """One PHP 8 attribute, e.g. ``#[Route('/x', methods: ['GET'])]``."""

    __slots__ = ('name', 'full_name', 'node', 'positional', 'named')

    def __init__(self, node: TSNode):
        ref = node.first_child_of_type('name', 'qualified_name')
        self.full_name = ref.text.strip().lstrip('\\') if ref is not None else ''
        self.name = strip_namespace(self.full_name)
        self.node = node
        self.positional, self.named = split_arguments(node.get_arguments())

    def arg(self, index: int, *names: str) -> Optional[TSNode]:
        for n in names:
            if n in self.named:
                return self.named[n]
        if index is not None and index < len(self.positional):
            return self.positional[index]
        return None

    def __repr__(self):
        return f'Attribute({self.full_name})'


def attributes_of(decl: TSNode) -> List[Attribute]:
    """Attributes attached to a class, method or function declaration."""
    attr_list = decl.child_by_field('attributes') or decl.first_child_of_type('attribute_list')
    if attr_list is None:
        return []
    return [Attribute(n) for n in attr_list.find_all('attribute')]


def iter_classes(root: TSNode) -> Iterator[TSNode]:
    return root.find_all('class_declaration')


def class_name(cls: TSNode) -> str:
    name = cls.child_by_field('name')
    return name.text if name is not None else ''


def parent_class_name(cls: TSNode) -> str:
    base = cls.first_child_of_type('base_clause')
    if base is None:
        return ''
    ref = base.first_child_of_type('name', 'qualified_name')
    return strip_namespace(ref.text) if ref is not None else ''


def class_methods(cls: TSNode) -> List[TSNode]:
    body = cls.child_by_field('body')
    if body is None:
        return []
    return [n for n in body.named_children if n.type == 'method_declaration']


def method_name(method: TSNode) -> str:
    name = method.child_by_field('name')
    return name.text if name is not None else ''


def is_public_method(method: TSNode) -> bool:
    """No visibility modifier means public in PHP."""
    modifier = method.first_child_of_type('visibility_modifier')
    return modifier is None or modifier.text.lower() == 'public'


def has_static_call_on(root: TSNode, scope_name: str) -> bool:
    """True when the tree contains ``scope_name::something(...)``."""
    for node in root.find_all('scoped_call_expression'):
        scope = node.child_by_field('scope')
        if scope is not None and strip_namespace(scope.text) == scope_name:
            return True
    return False


def closure_body(node: Optional[TSNode]) -> Optional[TSNode]:
    """Body of a closure or arrow function argument."""
    if node is None:
        return None
    if node.type == 'argument':
        node = node.argument_value()
    if node is None or not node.is_closure:
        return None
    return node.child_by_field('body')
