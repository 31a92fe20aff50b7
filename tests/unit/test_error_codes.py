# PATH: tests/unit/test_error_codes.py
"""
Unit tests for ErrorCode contract and the exception hierarchy.

Ensures all ErrorCode values used in the codebase actually exist in the enum,
so a typo cannot turn into an AttributeError on an error path.

Run: python -m pytest tests/unit/test_error_codes.py -v
"""

import re
import unittest
from pathlib import Path
from typing import Set

from core.exceptions import (
    ArbyError,
    ConfigError,
    ErrorCode,
    ExecutionError,
    InfraError,
    MevShareError,
    TransactionTimeoutError,
    ValidationError,
)


class TestErrorCodeContract(unittest.TestCase):
    """Test that all ErrorCode usages in codebase are valid."""

    SCAN_PATTERNS = [
        "core/**/*.py",
        "chains/**/*.py",
        "dex/**/*.py",
        "pricing/**/*.py",
        "strategy/**/*.py",
        "execution/**/*.py",
        "config/**/*.py",
    ]

    def find_errorcode_usages(self, filepath: Path) -> Set[str]:
        """Names used as ErrorCode.XXXX in a file."""
        content = filepath.read_text(encoding="utf-8")
        return set(re.findall(r"ErrorCode\.([A-Z_]+)", content))

    def test_all_errorcode_enum_usages_exist(self):
        """Verify all ErrorCode.XXXX usages reference valid enum members."""
        project_root = Path(__file__).parent.parent.parent
        valid_names = {code.name for code in ErrorCode}

        all_usages: Set[str] = set()
        files_scanned = 0
        for pattern in self.SCAN_PATTERNS:
            for filepath in project_root.glob(pattern):
                if "__pycache__" in str(filepath):
                    continue
                all_usages.update(self.find_errorcode_usages(filepath))
                files_scanned += 1

        invalid_usages = all_usages - valid_names
        self.assertEqual(
            invalid_usages,
            set(),
            f"Invalid ErrorCode usages found: {invalid_usages}",
        )
        self.assertGreater(files_scanned, 0, "No files scanned!")

    def test_values_equal_names(self):
        for code in ErrorCode:
            self.assertEqual(code.name, code.value)


class TestArbyError(unittest.TestCase):
    """String form and serialization."""

    def test_str_includes_code(self):
        err = InfraError(code=ErrorCode.INFRA_RPC_TIMEOUT, message="slow node")
        self.assertEqual(str(err), "[INFRA_RPC_TIMEOUT] slow node")

    def test_to_dict(self):
        err = ArbyError(code=ErrorCode.QUOTE_REVERT, message="reverted", details={"pool": "0xabc"})
        self.assertEqual(
            err.to_dict(),
            {"error_code": "QUOTE_REVERT", "message": "reverted", "details": {"pool": "0xabc"}},
        )

    def test_details_default_to_empty_dict(self):
        self.assertEqual(ArbyError().details, {})

    def test_config_error_code(self):
        self.assertEqual(ConfigError("bad").code, ErrorCode.CONFIG_INVALID)

    def test_validation_error_code(self):
        self.assertEqual(ValidationError("bad").code, ErrorCode.VALIDATION_ERROR)

    def test_timeout_is_execution_error(self):
        err = TransactionTimeoutError("0xabc", 2)
        self.assertIsInstance(err, ExecutionError)
        self.assertEqual(err.code, ErrorCode.EXEC_TIMEOUT)
        self.assertEqual(err.details["tx_hash"], "0xabc")

    def test_hierarchy_rooted_at_arby_error(self):
        for cls in (InfraError, ExecutionError, MevShareError, ConfigError, ValidationError):
            self.assertTrue(issubclass(cls, ArbyError))


if __name__ == "__main__":
    unittest.main()
