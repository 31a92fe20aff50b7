# PATH: tests/unit/test_logging_contract.py
"""
Tests for the logging contract.

No kwargs to logger calls; context goes only through extra={"context": {...}}.
JSON output carries timestamp, level, logger, message and merged context.
"""

import ast
import json
import logging
import unittest
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List

from core.logging import (
    JSONFormatter,
    clear_global_context,
    get_logger,
    log_error,
    log_opportunity,
    log_transaction,
    set_global_context,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent
SOURCE_PACKAGES = ["core", "chains", "dex", "pricing", "strategy", "execution", "config"]


class TestLoggingContractEnforcement(unittest.TestCase):
    """AST-based tests for logging contract."""

    ALLOWED_KWARGS = {"exc_info", "extra", "stack_info", "stacklevel"}

    def _find_logger_violations(self, source_code: str) -> List[Dict[str, Any]]:
        """Find logger calls with invalid kwargs using AST."""
        violations = []
        tree = ast.parse(source_code)

        for node in ast.walk(tree):
            if not isinstance(node, ast.Call):
                continue
            if not isinstance(node.func, ast.Attribute):
                continue

            method_name = node.func.attr
            if method_name not in ("debug", "info", "warning", "error", "critical", "exception"):
                continue

            obj = node.func.value
            is_logger = False
            if isinstance(obj, ast.Name):
                is_logger = "log" in obj.id.lower() or obj.id == "logger"
            elif isinstance(obj, ast.Attribute):
                is_logger = "log" in obj.attr.lower() or obj.attr == "logger"
            if not is_logger:
                continue

            for kw in node.keywords:
                if kw.arg and kw.arg not in self.ALLOWED_KWARGS:
                    violations.append({
                        "line": node.lineno,
                        "method": method_name,
                        "invalid_kwarg": kw.arg,
                    })
        return violations

    def test_no_invalid_kwargs_in_source(self):
        """Every logger call in the source packages passes context via extra."""
        scanned = 0
        for package in SOURCE_PACKAGES:
            for filepath in (PROJECT_ROOT / package).rglob("*.py"):
                if "__pycache__" in filepath.parts:
                    continue
                violations = self._find_logger_violations(filepath.read_text(encoding="utf-8"))
                scanned += 1
                if violations:
                    msg = f"Found {len(violations)} logging violations in {filepath}:\n"
                    for v in violations:
                        msg += f"  Line {v['line']}: logger.{v['method']}(..., {v['invalid_kwarg']}=...)\n"
                    self.fail(msg)
        self.assertGreater(scanned, 0)

    def test_detector_catches_violation(self):
        violations = self._find_logger_violations('logger.info("x", block_number=1)\n')
        self.assertEqual(violations[0]["invalid_kwarg"], "block_number")


class _Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class TestJSONOutput(unittest.TestCase):
    """Formatter and adapter output."""

    def setUp(self) -> None:
        self.capture = _Capture()
        self.base = logging.getLogger("arby.test.logging")
        self.base.addHandler(self.capture)
        self.base.setLevel(logging.DEBUG)
        self.base.propagate = False
        self.formatter = JSONFormatter()

    def tearDown(self) -> None:
        self.base.removeHandler(self.capture)
        clear_global_context()

    def _last_json(self) -> Dict[str, Any]:
        return json.loads(self.formatter.format(self.capture.records[-1]))

    def test_fields_present(self):
        get_logger("arby.test.logging").info("hello", extra={"context": {"block_number": 5}})
        entry = self._last_json()
        self.assertEqual(entry["level"], "INFO")
        self.assertEqual(entry["logger"], "arby.test.logging")
        self.assertEqual(entry["message"], "hello")
        self.assertEqual(entry["context"]["block_number"], 5)
        self.assertIn("timestamp", entry)

    def test_default_context_merged_with_call_context(self):
        logger = get_logger("arby.test.logging", chain_id=1)
        logger.info("x", extra={"context": {"asset": "WETH"}})
        self.assertEqual(self._last_json()["context"], {"chain_id": 1, "asset": "WETH"})

    def test_global_context(self):
        set_global_context(service="arby-mev")
        get_logger("arby.test.logging").info("x")
        self.assertEqual(self._last_json()["context"]["service"], "arby-mev")

    def test_decimal_is_serializable(self):
        get_logger("arby.test.logging").info("x", extra={"context": {"price": Decimal("1.5")}})
        self.assertEqual(self._last_json()["context"]["price"], "1.5")

    def test_helpers_use_standard_keys(self):
        logger = get_logger("arby.test.logging")
        log_opportunity(logger, "WETH_USDC_uniswap_v2_sushiswap", Decimal("9.99"), "SELECTED")
        self.assertEqual(self._last_json()["context"]["net_profit_usd"], "9.99")

        log_transaction(logger, "0x" + "ab" * 32, "SUBMITTED", nonce=3)
        ctx = self._last_json()["context"]
        self.assertEqual(ctx["state"], "SUBMITTED")
        self.assertEqual(ctx["nonce"], 3)

        log_error(logger, "EXEC_TIMEOUT", "gave up")
        entry = self._last_json()
        self.assertEqual(entry["level"], "ERROR")
        self.assertEqual(entry["message"], "[EXEC_TIMEOUT] gave up")


if __name__ == "__main__":
    unittest.main()
