#!/usr/bin/env python3
"""Tests for the tree-sitter adapter used by the discoverers."""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apiposture.ts_adapter import (
    ParseError, TSNode, parse_php_file, parse_php_source, parse_php_ts, strip_namespace,
)


def _first(root, node_type):
    return next(root.find_all(node_type))


class TestParsing:
    def test_parse_basic(self):
        """A PHP snippet parses to a program node."""
        root = parse_php_ts('<?php echo "hello"; ?>')
        assert root.type == 'program'

    def test_auto_php_tag(self):
        """Code without an opening tag still parses as PHP."""
        root = parse_php_ts('echo "hello";')
        types = [n.type for n in root.walk_descendants()]
        assert 'echo_statement' in types

    def test_syntax_error_raises(self):
        """parse_php_source refuses trees with errors."""
        with pytest.raises(ParseError) as exc:
            parse_php_source('<?php function broken( {', 'broken.php')
        assert exc.value.path == 'broken.php'

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ParseError):
            parse_php_file(str(tmp_path / 'missing.php'))

    def test_parse_file(self, tmp_path):
        path = tmp_path / 'ok.php'
        path.write_text("<?php\n$x = $_GET['id'];\n")
        root = parse_php_file(str(path))
        assert root.type == 'program'
        assert not root.has_error

    def test_leading_inline_html(self):
        """Template text before the opening tag is not a syntax error."""
        root = parse_php_source("<h1>Hi</h1>\n<?php echo $_GET['q']; ?>\n<p>bye</p>\n", 'page.php')
        assert not root.has_error
        echo = _first(root, 'echo_statement')
        assert echo.line == 2

    def test_byte_order_mark_file(self, tmp_path):
        path = tmp_path / 'bom.php'
        path.write_bytes(b"\xef\xbb\xbf<?php\n$x = $_GET['id'];\n")
        root = parse_php_file(str(path))
        assert not root.has_error
        assert _first(root, 'assignment_expression').line == 2

    def test_invalid_utf8_still_parses(self, tmp_path):
        path = tmp_path / 'latin1.php'
        path.write_bytes(b"<?php\necho 'caf\xe9';\n")
        root = parse_php_file(str(path))
        assert not root.has_error


class TestNodes:
    def test_node_line_and_end_line(self):
        """Lines are 1-based and end_line covers multi-line nodes."""
        root = parse_php_ts('<?php\nfoo(function () {\n    return 1;\n});')
        call = _first(root, 'function_call_expression')
        assert call.line == 2
        assert call.end_line == 4

    def test_parent(self):
        root = parse_php_ts('<?php $a->b()->c();')
        inner = [n for n in root.find_all('member_call_expression')
                 if n.get_function_name() == 'b'][0]
        assert inner.parent.get_function_name() == 'c'

    def test_function_names(self):
        """Function, member and static call names are all reported."""
        root = parse_php_ts('<?php foo(); $o->bar(); Route::get("/x");')
        names = sorted(n.get_function_name() for n in root.walk_descendants() if n.is_call)
        assert names == ['bar', 'foo', 'get']

    def test_named_arguments(self):
        root = parse_php_ts('<?php f("/x", methods: ["GET"]);')
        args = _first(root, 'function_call_expression').get_arguments()
        assert [a.argument_name() for a in args] == [None, 'methods']
        assert args[1].argument_value().type == 'array_creation_expression'


class TestStringValues:
    @pytest.mark.parametrize('code, expected', [
        ("'plain'", 'plain'),
        ('"double"', 'double'),
        ("'it\\'s'", "it's"),
        ("''", ''),
    ])
    def test_literal_strings(self, code, expected):
        root = parse_php_ts(f'<?php f({code});')
        arg = _first(root, 'function_call_expression').get_arguments()[0]
        assert arg.string_value() == expected

    def test_interpolated_string_is_not_literal(self):
        root = parse_php_ts('<?php f("/users/$id");')
        arg = _first(root, 'function_call_expression').get_arguments()[0]
        assert arg.string_value() is None

    def test_non_string_is_none(self):
        root = parse_php_ts('<?php f($x);')
        arg = _first(root, 'function_call_expression').get_arguments()[0]
        assert arg.string_value() is None


def test_strip_namespace():
    assert strip_namespace('\\Symfony\\Component\\Routing\\Attribute\\Route') == 'Route'
    assert strip_namespace('Route') == 'Route'
