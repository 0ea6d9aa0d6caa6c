"""
Structured output schemas for collaborator responses.

Defines the JSON shape an external collaborator must print, and
turns validated output into a Report.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from .errors import ReportParseError
from .models import Report

logger = logging.getLogger(__name__)


@dataclass
class ResponseSchema:
	"""A schema for structured output from a collaborator."""

	name: str
	description: str
	json_schema: dict[str, Any] = field(default_factory=dict)

	def validate(self, response_str: str) -> tuple[bool, Optional[dict[str, Any]], Optional[str]]:
		"""
		Parse and validate a response against this schema.

		Returns:
			Tuple of (is_valid, parsed_data, error_message)
		"""
		try:
			data = json.loads(response_str)
		except json.JSONDecodeError as e:
			return False, None, f"Invalid JSON: {e}"

		if not isinstance(data, dict):
			return False, None, f"Expected a JSON object, got '{type(data).__name__}'"

		required = self.json_schema.get("required", [])
		properties = self.json_schema.get("properties", {})

		for key in required:
			if key not in data:
				return False, data, f"Missing required key: {key}"

		# Validate property types (best-effort)
		for key, prop_schema in properties.items():
			if key in data and data[key] is not None:
				expected_type = prop_schema.get("type")
				if expected_type and not _check_type(data[key], expected_type):
					return False, data, f"Key '{key}' expected type '{expected_type}', got '{type(data[key]).__name__}'"
				allowed = prop_schema.get("enum")
				if allowed and data[key] not in allowed:
					return False, data, f"Key '{key}' must be one of {allowed}, got {data[key]!r}"

		return True, data, None


def _check_type(value: Any, expected: str) -> bool:
	"""Check if a value matches the expected JSON schema type."""
	type_map = {
		"string": str,
		"number": (int, float),
		"integer": int,
		"boolean": bool,
		"array": list,
		"object": dict,
	}
	expected_type = type_map.get(expected)
	if expected_type is None:
		return True  # Unknown type, skip validation
	return isinstance(value, expected_type)


REPORT_SCHEMA = ResponseSchema(
	name="report",
	description="Review or implementation report from a collaborator",
	json_schema={
		"type": "object",
		"required": ["approved", "issues", "blockers"],
		"properties": {
			"approved": {
				"type": "array",
				"description": "What the collaborator approves of",
				"items": {"type": "string"},
			},
			"issues": {
				"type": "object",
				"description": "Non-blocking issues keyed by category (design, test, security, ...)",
			},
			"blockers": {
				"type": "array",
				"description": "Findings that must be fixed before the work can pass",
				"items": {"type": "string"},
			},
			"verdict": {
				"type": "string",
				"description": "Gate verdict (Phase 3 only)",
				"enum": ["PASS", "CONDITIONAL_PASS", "FAIL"],
			},
		},
	},
)


def parse_report(collaborator_id: str, response_str: str) -> Report:
	"""
	Turn collaborator output into a Report.

	The collaborator id always comes from the caller, never from the output.

	Raises:
		ReportParseError: if the output is not a valid report
	"""
	is_valid, data, error = REPORT_SCHEMA.validate(response_str.strip())
	if not is_valid:
		raise ReportParseError(f"{collaborator_id}: {error}")

	data = dict(data)
	data["collaborator_id"] = collaborator_id
	data.pop("error", None)
	try:
		return Report.model_validate(data)
	except ValidationError as e:
		raise ReportParseError(f"{collaborator_id}: {e}") from e
