#!/usr/bin/env python3
"""
Scan result rendering: JSON for CI pipelines, Markdown for reviews and a
coloured terminal report.
"""

import json
from typing import List, Optional, Sequence

from .filters import group_endpoints, group_findings
from .models import Endpoint, Finding, GroupField, ScanResult, Severity

SEVERITY_ICONS = {
    Severity.CRITICAL: '🔴',
    Severity.HIGH: '🟠',
    Severity.MEDIUM: '🟡',
    Severity.LOW: '🔵',
    Severity.INFO: 'ℹ️',
}
SEVERITY_COLORS = {
    Severity.CRITICAL: '31;1',
    Severity.HIGH: '31',
    Severity.MEDIUM: '33',
    Severity.LOW: '36',
    Severity.INFO: '2',
}
ENDPOINT_HEADERS = ('Route', 'Methods', 'Classification', 'Controller', 'Auth')


def _endpoint_row(ep: Endpoint) -> List[str]:
    return [
        ep.route,
        ep.methods_string(),
        ep.classification.label,
        ep.controller_name or '-',
        'Yes' if ep.authorization.has_auth else 'No',
    ]


def format_json(result: ScanResult, indent: int = 2) -> str:
    return json.dumps(result.to_dict(), indent=indent, ensure_ascii=False)


# ── Markdown ─────────────────────────────────────────────────────────────

def _md_escape(text: str) -> str:
    return text.replace('|', '\\|')


def _md_table(headers: Sequence[str], rows: List[List[str]]) -> List[str]:
    lines = ['| ' + ' | '.join(headers) + ' |',
             '|' + '|'.join('---' for _ in headers) + '|']
    for row in rows:
        lines.append('| ' + ' | '.join(_md_escape(c) for c in row) + ' |')
    return lines


def format_markdown(result: ScanResult,
                    group_by: Optional[GroupField] = None,
                    group_findings_by: Optional[GroupField] = None) -> str:
    out = [
        '# ApiPosture Scan Results',
        '',
        f'- **Path:** `{result.scanned_path}`',
        f'- **Duration:** {result.duration:.2f}s',
        f'- **Files scanned:** {len(result.scanned_files)}',
        f'- **Files failed:** {len(result.failed_files)}',
        f'- **Endpoints:** {len(result.endpoints)}',
        f'- **Findings:** {len(result.findings)}',
        '',
    ]

    if result.endpoints:
        out.append('## Endpoints')
        out.append('')
        if group_by is not None:
            for label, endpoints in group_endpoints(result.endpoints, group_by).items():
                out.append(f'### {label}')
                out.append('')
                out.extend(_md_table(ENDPOINT_HEADERS, [_endpoint_row(e) for e in endpoints]))
                out.append('')
        else:
            out.extend(_md_table(ENDPOINT_HEADERS, [_endpoint_row(e) for e in result.endpoints]))
            out.append('')

    if result.findings:
        counts = result.severity_counts()
        out.append('## Findings Summary')
        out.append('')
        out.extend(_md_table(('Severity', 'Count'),
                             [[s.label, str(counts[s])] for s in sorted(counts, reverse=True)]))
        out.append('')
        out.append('## Findings Detail')
        out.append('')
        if group_findings_by is not None:
            for label, findings in group_findings(result.findings, group_findings_by).items():
                out.append(f'### {label}')
                out.append('')
                out.extend(_md_findings(findings))
        else:
            out.extend(_md_findings(result.findings))

    if result.failed_files:
        out.append('## Failed Files')
        out.append('')
        out.extend(f'- `{path}`' for path in result.failed_files)
        out.append('')

    return '\n'.join(out) + '\n'


def _md_findings(findings: Sequence[Finding]) -> List[str]:
    lines = []
    for f in findings:
        lines.append(f'#### [{f.rule_id}] {f.rule_name} ({f.severity.label})')
        lines.append('')
        lines.append(f'- **Route:** `{f.endpoint.route}` ({f.endpoint.methods_string()})')
        lines.append(f'- **Location:** `{f.endpoint.location}`')
        lines.append(f'- **Message:** {f.message}')
        if f.recommendation:
            lines.append(f'- **Recommendation:** {f.recommendation}')
        lines.append('')
    return lines


# ── Terminal ─────────────────────────────────────────────────────────────

class TerminalFormatter:
    """Plain-text report with optional ANSI colours and emoji icons."""

    RULE = '─' * 60

    def __init__(self, use_colors: bool = True, use_icons: bool = True):
        self.use_colors = use_colors
        self.use_icons = use_icons

    def _c(self, code: str, text: str) -> str:
        if not self.use_colors:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _icon(self, icon: str) -> str:
        return f'{icon} ' if self.use_icons else ''

    def severity_label(self, severity: Severity) -> str:
        return self._icon(SEVERITY_ICONS[severity]) + self._c(SEVERITY_COLORS[severity], severity.label)

    def _table(self, headers: Sequence[str], rows: List[List[str]], indent: str = '  ') -> List[str]:
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))
        sep = indent + '+' + '+'.join('-' * (w + 2) for w in widths) + '+'

        def line(cells):
            return indent + '|' + '|'.join(f' {c.ljust(w)} ' for c, w in zip(cells, widths)) + '|'

        lines = [sep, line(headers), sep]
        lines.extend(line(r) for r in rows)
        lines.append(sep)
        return lines

    def format(self, result: ScanResult,
               group_by: Optional[GroupField] = None,
               group_findings_by: Optional[GroupField] = None) -> str:
        out = ['']
        out.append(self._icon('🔍') + self._c('1', 'ApiPosture Scan Results'))
        out.append(self.RULE)
        out.append(f'  Path:     {result.scanned_path}')
        out.append(f'  Duration: {result.duration:.2f}s')
        out.append(f'  Files:    {len(result.scanned_files)} scanned')
        out.append('')

        out.append(self._icon('📊') + self._c('1', 'Summary'))
        rows = [['Endpoints', str(len(result.endpoints))],
                ['Findings', str(len(result.findings))]]
        counts = result.severity_counts()
        for severity in sorted(counts, reverse=True):
            rows.append([f'  {severity.label}', str(counts[severity])])
        out.extend(self._table(('Metric', 'Count'), rows))
        out.append('')

        if result.endpoints:
            out.append(self._icon('🌐') + self._c('1', 'Endpoints'))
            if group_by is not None:
                for label, endpoints in group_endpoints(result.endpoints, group_by).items():
                    out.append('  ' + self._c('33', label))
                    out.extend(self._table(ENDPOINT_HEADERS, [_endpoint_row(e) for e in endpoints]))
                    out.append('')
            else:
                out.extend(self._table(ENDPOINT_HEADERS, [_endpoint_row(e) for e in result.endpoints]))
                out.append('')

        if result.findings:
            out.append(self._icon('⚠️ ') + self._c('1', 'Findings'))
            if group_findings_by is not None:
                for label, findings in group_findings(result.findings, group_findings_by).items():
                    out.append('  ' + self._c('33', label))
                    out.extend(self._findings(findings))
            else:
                out.extend(self._findings(result.findings))

        if result.failed_files:
            out.append(self._icon('❌') + self._c('31', 'Failed Files'))
            out.extend(f'  - {path}' for path in result.failed_files)
            out.append('')

        return '\n'.join(out) + '\n'

    def _findings(self, findings: Sequence[Finding]) -> List[str]:
        lines = []
        for f in findings:
            lines.append(f'  [{f.rule_id}] {self.severity_label(f.severity)} {f.rule_name}')
            lines.append(f'    Route: {f.endpoint.route}')
            lines.append(f'    {f.message}')
            if f.recommendation:
                lines.append('    ' + self._c('2', f'→ {f.recommendation}'))
            lines.append('')
        return lines


FORMATS = ('terminal', 'json', 'markdown')


def render(result: ScanResult, fmt: str = 'terminal',
           group_by: Optional[GroupField] = None,
           group_findings_by: Optional[GroupField] = None,
           use_colors: bool = True, use_icons: bool = True) -> str:
    if fmt == 'json':
        return format_json(result)
    if fmt == 'markdown':
        return format_markdown(result, group_by, group_findings_by)
    if fmt == 'terminal':
        return TerminalFormatter(use_colors, use_icons).format(result, group_by, group_findings_by)
    raise ValueError(f"Unknown output format '{fmt}' (expected one of: {', '.join(FORMATS)})")
