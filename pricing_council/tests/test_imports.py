"""
Tests: Every module imports on its own, in a fresh interpreter.

Run with:
    pytest pricing_council/tests/test_imports.py -v
"""

import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]

MODULES = [
    "pricing_council.persistence.ontology_repository",
    "pricing_council.persistence.snapshot_repository",
    "pricing_council.services.audit_service",
    "pricing_council.services.decision_service",
    "pricing_council.services.ontology_service",
    "pricing_council.orchestration.graph",
    "pricing_council.api.routes",
]


class TestImports:
    @pytest.mark.parametrize("module", MODULES)
    def test_imports_first(self, module):
        result = subprocess.run(
            [sys.executable, "-c", f"import {module}"], capture_output=True, text=True, cwd=ROOT,
        )
        assert result.returncode == 0, result.stderr
