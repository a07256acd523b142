"""
Pre-flight checks - inspect a proposed file write before anyone approves it.

The result sits next to the pending action so the reviewer sees problems
before the tool runs. Checks run in order and stop at the first failure:
- Syntax (Python, JSON, bracket balance for brace languages)
- Merge-conflict markers
- Secrets (keys, tokens, private key blocks)
"""

import ast
import json
import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Languages checked for balanced (), [] and {}
BRACKET_SUFFIXES = frozenset({".js", ".jsx", ".ts", ".tsx", ".css", ".java", ".c", ".cpp", ".go", ".rs"})

_BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}

_CONFLICT_RE = re.compile(r"^(<{7}|={7}|>{7})(?: |$)", re.MULTILINE)

_SECRET_PATTERNS = [
	("AWS access key", re.compile(r"\bAKIA[0-9A-Z]{16}\b")),
	("private key", re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----")),
	("GitHub token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{36,}\b")),
	("Slack token", re.compile(r"\bxox[abpors]-[A-Za-z0-9-]{10,}\b")),
	(
		"hardcoded credential",
		re.compile(r"(?i)\b(api[_-]?key|secret|password|passwd|token)\b\s*[:=]\s*['\"][^'\"\s]{8,}['\"]"),
	),
]


class CheckStatus(str, Enum):
	"""Status of a pre-flight check."""
	PASSED = "passed"
	FAILED = "failed"
	SKIPPED = "skipped"


class CheckResult(BaseModel):
	"""Result of a single pre-flight check."""
	name: str
	status: CheckStatus
	message: str = ""


class PreflightResult(BaseModel):
	"""All checks for one proposed action."""
	tool_name: str
	path: str
	checks: list[CheckResult] = Field(default_factory=list)
	diagnostics: list[str] = Field(default_factory=list)
	checked_at: str = Field(default_factory=lambda: datetime.now().isoformat())

	@property
	def has_errors(self) -> bool:
		return any(c.status == CheckStatus.FAILED for c in self.checks)

	@property
	def summary(self) -> str:
		passed = sum(1 for c in self.checks if c.status == CheckStatus.PASSED)
		failed = sum(1 for c in self.checks if c.status == CheckStatus.FAILED)
		return f"{passed} passed, {failed} failed out of {len(self.checks)} checks"


def find_syntax_errors(path: str, content: str) -> Optional[list[str]]:
	"""
	Diagnostics for the file's language.

	Returns:
		A list of problems (empty when clean), or None when the language
		has no syntax check
	"""
	suffix = PurePosixPath(path).suffix.lower()
	if suffix == ".py":
		try:
			ast.parse(content, filename=path)
		except SyntaxError as e:
			return [f"line {e.lineno}: {e.msg}"]
		return []
	if suffix == ".json":
		try:
			json.loads(content)
		except json.JSONDecodeError as e:
			return [f"line {e.lineno}: {e.msg}"]
		return []
	if suffix in BRACKET_SUFFIXES:
		return _bracket_errors(content)
	return None


def _bracket_errors(content: str) -> list[str]:
	errors = []
	for opener, closer in _BRACKET_PAIRS.items():
		diff = content.count(opener) - content.count(closer)
		if diff != 0:
			errors.append(f"Unbalanced '{opener} {closer}' (diff: {diff})")
	return errors


def find_conflict_markers(content: str) -> list[int]:
	"""1-based line numbers of merge-conflict markers."""
	return [content.count("\n", 0, m.start()) + 1 for m in _CONFLICT_RE.finditer(content)]


def find_secrets(content: str) -> list[str]:
	"""Kinds of secrets that appear in the content."""
	return [kind for kind, pattern in _SECRET_PATTERNS if pattern.search(content)]


class BasicPreflightChecker:
	"""
	Static checks on write-style actions.

	Any action whose args carry a string "path" and "content" is checked.
	Other actions get no result.
	"""

	async def check(self, tool_name: str, args: dict[str, Any]) -> Optional[PreflightResult]:
		path = args.get("path")
		content = args.get("content")
		if not isinstance(path, str) or not isinstance(content, str) or not path:
			return None

		result = PreflightResult(tool_name=tool_name, path=path)

		syntax = find_syntax_errors(path, content)
		if syntax is None:
			result.checks.append(CheckResult(name="syntax", status=CheckStatus.SKIPPED, message="No checker for this file type"))
		elif syntax:
			result.diagnostics.extend(syntax)
			result.checks.append(CheckResult(name="syntax", status=CheckStatus.FAILED, message=f"{len(syntax)} problem(s)"))
			self._skip_rest(result, ["conflicts", "secrets"])
			return self._done(result)
		else:
			result.checks.append(CheckResult(name="syntax", status=CheckStatus.PASSED))

		markers = find_conflict_markers(content)
		if markers:
			result.diagnostics.extend(f"line {n}: merge-conflict marker" for n in markers)
			result.checks.append(CheckResult(name="conflicts", status=CheckStatus.FAILED, message="Merge conflicts"))
			self._skip_rest(result, ["secrets"])
			return self._done(result)
		result.checks.append(CheckResult(name="conflicts", status=CheckStatus.PASSED))

		secrets = find_secrets(content)
		if secrets:
			result.diagnostics.extend(f"possible {kind}" for kind in secrets)
			result.checks.append(CheckResult(name="secrets", status=CheckStatus.FAILED, message=", ".join(secrets)))
		else:
			result.checks.append(CheckResult(name="secrets", status=CheckStatus.PASSED, message="No secrets found"))
		return self._done(result)

	def _skip_rest(self, result: PreflightResult, names: list[str]) -> None:
		for name in names:
			result.checks.append(CheckResult(name=name, status=CheckStatus.SKIPPED, message="Skipped"))

	def _done(self, result: PreflightResult) -> PreflightResult:
		logger.debug(f"Pre-flight for {result.tool_name} {result.path}: {result.summary}")
		return result
