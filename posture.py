#!/usr/bin/env python3
"""
ApiPosture - API security posture scanner for PHP projects

Inventories the HTTP endpoints of a Laravel, Symfony, Slim or plain PHP
codebase and flags insecure exposure:
- Unauthenticated write endpoints
- Accidental public access without explicit anonymous intent
- Controller/action authorization conflicts
- Weak or excessive role assignments and sensitive public routes

Usage:
    posture.py scan /path/to/project                  # Terminal report
    posture.py /path/to/project -o json               # JSON for CI
    posture.py /path/to/project -o markdown --output-file report.md
    posture.py /path/to/project --fail-on critical    # CI gate
"""

import sys
import os
import argparse
import logging
from typing import List, Optional

from apiposture import __version__
from apiposture.analyzer import ProjectAnalyzer
from apiposture.config import Configuration, ConfigurationError
from apiposture.filters import filter_endpoints, filter_findings, sort_endpoints, sort_findings
from apiposture.models import (
    GroupField, HttpMethod, SecurityClassification, Severity, SortDirection,
    SortField, UnknownEnumValue,
)
from apiposture.report import FORMATS, render

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2

# ── Color helpers (auto-disable on non-TTY) ──────────────────────────────────

_COLOR_ENABLED = hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

def _c(code: str, text: str) -> str:
    if not _COLOR_ENABLED:
        return text
    return f"\033[{code}m{text}\033[0m"

def _red(t):    return _c("31", t)
def _green(t):  return _c("32", t)
def _yellow(t): return _c("33", t)
def _cyan(t):   return _c("36", t)
def _bold(t):   return _c("1", t)


# ── Progress output (stderr) ─────────────────────────────────────────────────

_quiet = False

def _progress(msg: str, prefix: str = "[*]"):
    """Print progress/status to stderr (not mixed with results)."""
    if _quiet:
        return
    print(f"{_cyan(prefix)} {msg}", file=sys.stderr)

def _success(msg: str):
    _progress(msg, _green("[+]"))

def _warn(msg: str):
    _progress(msg, _yellow("[!]"))

def _error(msg: str):
    print(f"{_red('[ERROR]')} {msg}", file=sys.stderr)


# ── Argument parsing ─────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='posture',
        description='ApiPosture - scan a PHP project for API security posture issues',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Rules:
  AP001  Public without explicit intent       AP005  Excessive role access
  AP002  Allow anonymous on write             AP006  Weak role naming
  AP003  Controller-action auth conflict      AP007  Sensitive route keywords
  AP004  Missing auth on writes               AP008  Unprotected endpoint

Exit codes:
  0  no finding at or above --fail-on
  1  findings at or above --fail-on, or invalid path
  2  invalid option or configuration
        '''
    )
    parser.add_argument('path', help='Path to the project (or PHP file) to scan')
    parser.add_argument('-o', '--output', choices=FORMATS, default='terminal',
                        help='Output format (default: terminal)')
    parser.add_argument('--output-file', help='Write output to a file')
    parser.add_argument('-c', '--config', help='Path to config file (.json or .yml)')
    parser.add_argument('--severity',
                        help='Minimum finding severity to display: info, low, medium, high, critical')
    parser.add_argument('--fail-on',
                        help='Exit 1 on findings at or above this severity (default: high)')
    parser.add_argument('--sort-by',
                        help='Sort by: severity, route, method, classification, controller, location')
    parser.add_argument('--sort-dir', default='asc', help='Sort direction: asc, desc')

    filters = parser.add_argument_group('Filters')
    filters.add_argument('--classification',
                         help='public, authenticated, role_restricted, policy_restricted')
    filters.add_argument('--method', help='GET, POST, PUT, DELETE, PATCH')
    filters.add_argument('--route-contains', help='Only routes containing this text')
    filters.add_argument('--controller', help='Only endpoints of this controller')
    filters.add_argument('--rule', help='Only findings of this rule ID (e.g. AP001)')

    display = parser.add_argument_group('Display')
    display.add_argument('--group-by', help='Group endpoints by: controller, classification, severity, method, type')
    display.add_argument('--group-findings-by', help='Group findings by: controller, classification, severity, method, type')
    display.add_argument('--no-color', action='store_true', help='Disable colored output')
    display.add_argument('--no-icons', action='store_true', help='Disable icon output')
    display.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    display.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'ApiPosture v{__version__}')
    return parser


def _optional(parse, value):
    return parse(value) if value else None


# ── Main entry point ─────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    global _quiet

    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == 'scan':
        argv = argv[1:]
    args = build_parser().parse_args(argv)
    _quiet = args.quiet

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    path = os.path.realpath(args.path)
    if not os.path.exists(path):
        _error(f"Invalid path: {args.path}")
        return EXIT_FINDINGS

    # ── Options and configuration (fail fast, before scanning) ──────────
    try:
        min_severity = _optional(Severity.from_string, args.severity)
        fail_on = _optional(Severity.from_string, args.fail_on)
        classification = _optional(SecurityClassification.from_string, args.classification)
        method = _optional(HttpMethod.from_string, args.method)
        sort_by = _optional(SortField.from_string, args.sort_by)
        sort_dir = SortDirection.from_string(args.sort_dir)
        group_by = _optional(GroupField.from_string, args.group_by)
        group_findings_by = _optional(GroupField.from_string, args.group_findings_by)
    except UnknownEnumValue as e:
        _error(str(e))
        return EXIT_USAGE

    try:
        config = Configuration.load(args.config, path)
    except ConfigurationError as e:
        _error(f"Configuration error: {e}")
        return EXIT_USAGE
    if config.source:
        _progress(f"Config: {config.source}")
    if fail_on is not None:
        config.fail_on = fail_on
    if min_severity is None:
        min_severity = config.default_severity
    if args.no_color:
        config.use_colors = False
    if args.no_icons:
        config.use_icons = False

    # ── Scan ─────────────────────────────────────────────────────────────
    _progress(f"Scanning: {path}")
    result = ProjectAnalyzer(config).scan(path)
    _success(f"Scanned {len(result.scanned_files)} file(s) in {result.duration:.2f}s: "
             f"{len(result.endpoints)} endpoint(s), {len(result.findings)} finding(s)")
    for failed in result.failed_files:
        _warn(f"Could not parse {failed}")

    # ── Filter, sort, render ─────────────────────────────────────────────
    endpoints = filter_endpoints(result.endpoints, classification, method,
                                 args.route_contains, args.controller)
    findings = filter_findings(result.findings, min_severity, classification, method,
                               args.route_contains, args.controller, args.rule)
    if sort_by is not None:
        endpoints = sort_endpoints(endpoints, sort_by, sort_dir, findings)
        findings = sort_findings(findings, sort_by, sort_dir)
    shown = result.replace(endpoints=endpoints, findings=findings)

    to_file = bool(args.output_file)
    output = render(
        shown, args.output, group_by, group_findings_by,
        use_colors=config.use_colors and not to_file and sys.stdout.isatty(),
        use_icons=config.use_icons,
    )
    if to_file:
        with open(args.output_file, 'w', encoding='utf-8') as f:
            f.write(output)
        _success(f"Output written to {args.output_file}")
    else:
        sys.stdout.write(output)

    # ── Exit code ────────────────────────────────────────────────────────
    failing = [f for f in shown.findings if f.severity >= config.fail_on]
    if failing:
        _warn(f"{len(failing)} finding(s) at or above {config.fail_on.label}")
        return EXIT_FINDINGS
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
