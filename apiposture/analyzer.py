#!/usr/bin/env python3
"""
Project analyzer: enumerate PHP files, discover endpoints, classify them and
evaluate the rule set into one ScanResult.

Parse failures are isolated per file and reported in ``failed_files``; they
never abort the scan.
"""

import logging
import os
import time
from typing import Dict, List, Optional, Sequence, Tuple

from .classifier import SecurityClassifier
from .config import Configuration
from .discovery import EndpointDiscoverer, default_discoverers
from .models import Endpoint, ScanResult, dedupe_endpoints
from .rule_engine import RuleEngine, get_rule_engine
from .ts_adapter import ParseError, TSNode, parse_php_file, parse_php_source

logger = logging.getLogger(__name__)


# Dependency, VCS and cache directories never scanned
SKIP_DIRS = frozenset({
    'vendor', 'node_modules', '.git', '.svn', '.hg',
    '.idea', '.vscode', '__pycache__', '.cache',
})
PHP_EXTENSIONS = ('.php',)


def find_php_files(root: str) -> List[str]:
    """Sorted PHP file paths under root, skipping dependency/VCS directories."""
    if os.path.isfile(root):
        return [root] if root.endswith(PHP_EXTENSIONS) else []
    php_files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for fname in sorted(filenames):
            if fname.endswith(PHP_EXTENSIONS):
                php_files.append(os.path.join(dirpath, fname))
    return php_files


class ProjectAnalyzer:
    """Discovery -> classification -> rule evaluation over a project tree."""

    def __init__(self, config: Optional[Configuration] = None,
                 discoverers: Optional[Sequence[EndpointDiscoverer]] = None,
                 engine: Optional[RuleEngine] = None,
                 dedupe: bool = False):
        self.config = config or Configuration()
        self.discoverers = list(discoverers) if discoverers is not None else default_discoverers()
        self.engine = engine or get_rule_engine(self.config)
        self.classifier = SecurityClassifier()
        self.dedupe = dedupe

    def discover_file(self, root: TSNode, file_path: str) -> List[Endpoint]:
        """Run every discoverer that accepts the parsed file."""
        endpoints = []
        for discoverer in self.discoverers:
            if discoverer.supports(root, file_path):
                endpoints.extend(discoverer.discover(root, file_path))
        return endpoints

    def scan(self, path: str) -> ScanResult:
        start = time.perf_counter()
        files = find_php_files(path)
        logger.info("Scanning %d PHP file(s) under %s", len(files), path)
        raw: List[Endpoint] = []
        failed: List[str] = []
        for fpath in files:
            try:
                root = parse_php_file(fpath)
            except ParseError as e:
                logger.warning("Failed to parse %s: %s", fpath, e.reason)
                failed.append(fpath)
                continue
            raw.extend(self.discover_file(root, fpath))
        return self._finish(path, raw, files, failed, start)

    def scan_sources(self, sources: Dict[str, str], scanned_path: str = '<memory>') -> ScanResult:
        """Scan in-memory {path: code} pairs instead of the filesystem."""
        start = time.perf_counter()
        raw: List[Endpoint] = []
        failed: List[str] = []
        for fpath in sorted(sources):
            try:
                root = parse_php_source(sources[fpath], fpath)
            except ParseError as e:
                logger.warning("Failed to parse %s: %s", fpath, e.reason)
                failed.append(fpath)
                continue
            raw.extend(self.discover_file(root, fpath))
        return self._finish(scanned_path, raw, sorted(sources), failed, start)

    def analyze(self, endpoints: List[Endpoint]) -> Tuple[List[Endpoint], list]:
        """Classify raw endpoints, then evaluate rules over the classified set."""
        if self.dedupe:
            before = len(endpoints)
            endpoints = dedupe_endpoints(endpoints)
            if before != len(endpoints):
                logger.debug("Dropped %d duplicate endpoint(s)", before - len(endpoints))
        classified = self.classifier.classify_all(endpoints)
        return classified, self.engine.evaluate(classified)

    def _finish(self, path: str, raw: List[Endpoint], files: List[str],
                failed: List[str], start: float) -> ScanResult:
        endpoints, findings = self.analyze(raw)
        duration = time.perf_counter() - start
        logger.info("Found %d endpoint(s), %d finding(s) in %.2fs",
                    len(endpoints), len(findings), duration)
        return ScanResult(
            scanned_path=path,
            endpoints=endpoints,
            findings=findings,
            scanned_files=files,
            failed_files=failed,
            duration=duration,
        )
