#!/usr/bin/env python3
"""
Tree-sitter adapter for the endpoint discoverers.
Wraps tree-sitter nodes with a small interface for route and attribute walking.
"""

import re
import tree_sitter_php as tsphp
from tree_sitter import Language, Parser
from typing import Iterator, List, Optional


# Module-level parser (initialized once)
_language = Language(tsphp.language_php())
_parser = Parser(_language)

_CLOSURE_TYPES = frozenset({
    'anonymous_function', 'anonymous_function_creation_expression', 'arrow_function',
})
_CALL_TYPES = frozenset({
    'function_call_expression', 'member_call_expression',
    'nullsafe_member_call_expression', 'scoped_call_expression',
})
_STRING_PARTS = frozenset({'string_content', 'string_value', 'escape_sequence'})
_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'v': '\v', 'f': '\f',
            '\\': '\\', '$': '$', '"': '"', '0': '\0', 'e': '\x1b'}


class ParseError(Exception):
    """Raised when a PHP file cannot be read or contains syntax errors."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class TSNode:
    """Lightweight wrapper around a tree-sitter node."""

    __slots__ = ('_node', '_code')

    def __init__(self, ts_node, code_bytes: bytes):
        self._node = ts_node
        self._code = code_bytes

    def __eq__(self, other):
        return isinstance(other, TSNode) and self._node == other._node

    def __hash__(self):
        return hash((self._node.start_byte, self._node.end_byte, self._node.type))

    @property
    def type(self) -> str:
        return self._node.type

    @property
    def text(self) -> str:
        return self._code[self._node.start_byte:self._node.end_byte].decode('utf8', errors='replace')

    @property
    def line(self) -> int:
        """1-based line number."""
        return self._node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self._node.end_point[0] + 1

    @property
    def column(self) -> int:
        return self._node.start_point[1]

    @property
    def has_error(self) -> bool:
        return self._node.has_error

    @property
    def parent(self) -> Optional['TSNode']:
        p = self._node.parent
        if p is not None:
            return TSNode(p, self._code)
        return None

    @property
    def children(self) -> List['TSNode']:
        """All children, including punctuation."""
        return [TSNode(c, self._code) for c in self._node.children]

    @property
    def named_children(self) -> List['TSNode']:
        """Named children only, comments excluded."""
        return [TSNode(c, self._code) for c in self._node.children
                if c.is_named and c.type != 'comment']

    def child_by_field(self, name: str) -> Optional['TSNode']:
        """Get child by tree-sitter field name."""
        c = self._node.child_by_field_name(name)
        if c is not None:
            return TSNode(c, self._code)
        return None

    def first_child_of_type(self, *types: str) -> Optional['TSNode']:
        for c in self._node.children:
            if c.type in types:
                return TSNode(c, self._code)
        return None

    @property
    def is_call(self) -> bool:
        return self.type in _CALL_TYPES

    @property
    def is_closure(self) -> bool:
        return self.type in _CLOSURE_TYPES

    def get_function_name(self) -> str:
        """Name of the called function or method for any call node."""
        if self.type == 'function_call_expression':
            func = self.child_by_field('function')
            if func:
                return strip_namespace(func.text)
        elif self.is_call:
            name = self.child_by_field('name')
            if name:
                return name.text
        return ''

    def get_arguments(self) -> List['TSNode']:
        """Get argument nodes from a call expression or attribute."""
        args_node = self.child_by_field('arguments')
        if args_node is None:
            args_node = self.child_by_field('parameters')
        if args_node is None:
            args_node = self.first_child_of_type('arguments')
        if args_node is None:
            return []
        return [TSNode(c, self._code) for c in args_node._node.children
                if c.is_named and c.type == 'argument']

    def argument_name(self) -> Optional[str]:
        """Label of a named argument (``path: '/x'``), None when positional."""
        if self.type != 'argument':
            return None
        name = self.child_by_field('name')
        return name.text if name is not None else None

    def argument_value(self) -> Optional['TSNode']:
        """Expression node carried by an argument."""
        if self.type != 'argument':
            return self
        named = self.named_children
        return named[-1] if named else None

    def string_value(self) -> Optional[str]:
        """Literal value of a quoted string without interpolation, else None."""
        node = self
        if node.type == 'argument':
            node = node.argument_value()
            if node is None:
                return None
        text = node.text
        if node.type == 'string':
            if text[:1] in ('b', 'B'):
                text = text[1:]
            if len(text) < 2:
                return None
            return re.sub(r"\\([\\'])", r'\1', text[1:-1])
        if node.type == 'encapsed_string':
            if any(c.type not in _STRING_PARTS for c in node.named_children):
                return None
            if text[:1] in ('b', 'B'):
                text = text[1:]
            if len(text) < 2:
                return None
            return re.sub(r'\\([ntrvfe\\$"0])', lambda m: _ESCAPES[m.group(1)], text[1:-1])
        return None

    def walk_descendants(self) -> Iterator['TSNode']:
        """Yield all descendant nodes (depth-first)."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_all(self, *types: str) -> Iterator['TSNode']:
        for node in self.walk_descendants():
            if node.type in types:
                yield node

    def __repr__(self):
        text = self.text
        if len(text) > 40:
            text = text[:40] + '...'
        return f'TSNode({self.type}, line={self.line}, {repr(text)})'


def strip_namespace(name: str) -> str:
    """'\\Foo\\Bar\\Route' -> 'Route'."""
    return name.strip().lstrip('\\').rsplit('\\', 1)[-1]


def parse_php_ts(code: str) -> TSNode:
    """Parse PHP code with tree-sitter, return wrapped root node."""
    if not code.strip().startswith('<?'):
        code = '<?php\n' + code
    return _parse(code)


def _parse(code: str) -> TSNode:
    code_bytes = code.encode('utf8')
    tree = _parser.parse(code_bytes)
    return TSNode(tree.root_node, code_bytes)


def parse_php_source(code: str, path: str = '<string>') -> TSNode:
    """Parse a whole PHP file's text, raising ParseError on syntax errors.

    The text is parsed as-is: leading inline HTML before the opening tag is
    kept as template text, and a UTF-8 byte order mark is dropped.
    """
    root = _parse(code.lstrip('\ufeff'))
    if root.has_error:
        bad = next((n for n in root.walk_descendants() if n.type == 'ERROR' or n._node.is_missing), None)
        where = f" near line {bad.line}" if bad is not None else ''
        raise ParseError(path, f"syntax error{where}")
    return root


def parse_php_file(path: str) -> TSNode:
    """Read and parse one PHP file."""
    try:
        with open(path, 'rb') as f:
            raw = f.read()
    except OSError as e:
        raise ParseError(path, f"unreadable ({e.strerror or e})") from e
    # invalid byte sequences become U+FFFD
    return parse_php_source(raw.decode('utf-8-sig', errors='replace'), path)
