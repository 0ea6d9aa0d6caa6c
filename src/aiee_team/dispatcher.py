"""
Task Dispatcher - Turns a task descriptor into a focus profile.

The prefix ("fix:", "feat:", "refactor:") picks an entry from a fixed
lookup table. Anything else falls back to the generic profile.
Feedback from an earlier cycle biases the profile toward the
findings that forced the loop-back.
"""

import logging
import re
from typing import Optional

from .models import ConsolidatedFeedback, FeedbackItem, FocusProfile, Prefix, TaskDescriptor

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^\s*([A-Za-z]+)\s*:\s*(.*)$", re.DOTALL)

FOCUS_TABLE: dict[Prefix, FocusProfile] = {
	Prefix.FIX: FocusProfile(
		name="bug-fix",
		prefix=Prefix.FIX,
		emphasis=[
			"Reproduce the defect with a failing test first",
			"Make the smallest change that fixes the root cause",
			"Avoid unrelated refactoring",
		],
		review_priorities=["regression risk", "root cause addressed", "test covers the defect"],
	),
	Prefix.FEAT: FocusProfile(
		name="feature",
		prefix=Prefix.FEAT,
		emphasis=[
			"Design the public interface before the implementation",
			"Cover the new behavior with tests",
			"Keep the change consistent with existing architecture",
		],
		review_priorities=["interface design", "test coverage", "security of new surface"],
	),
	Prefix.REFACTOR: FocusProfile(
		name="refactor",
		prefix=Prefix.REFACTOR,
		emphasis=[
			"Preserve observable behavior",
			"Keep existing tests green without rewriting them",
			"Improve structure in small, reviewable steps",
		],
		review_priorities=["behavior preserved", "structural clarity", "no dead code left"],
	),
}

GENERIC_PROFILE = FocusProfile(
	name="generic",
	prefix=Prefix.NONE,
	emphasis=["Implement the request with tests", "Follow existing project conventions"],
	review_priorities=["correctness", "test coverage", "maintainability"],
)


def parse_task(raw: str) -> TaskDescriptor:
	"""
	Parse '<prefix>: <text>' into a TaskDescriptor.

	An unknown or missing prefix yields Prefix.NONE with the full text
	kept as the description.
	"""
	text = raw.strip()
	match = _PREFIX_RE.match(text)
	if match:
		word = match.group(1).lower()
		try:
			prefix = Prefix(word)
		except ValueError:
			prefix = None
		if prefix is not None and prefix != Prefix.NONE:
			return TaskDescriptor(prefix=prefix, description=match.group(2).strip())
	return TaskDescriptor(prefix=Prefix.NONE, description=text)


class TaskDispatcher:
	"""Derives the focus profile for each cycle."""

	def __init__(self, table: Optional[dict[Prefix, FocusProfile]] = None):
		self.table = table if table is not None else FOCUS_TABLE

	def profile_for(self, task: TaskDescriptor) -> FocusProfile:
		"""Look up the base profile for a task's prefix."""
		profile = self.table.get(task.prefix)
		if profile is None:
			logger.warning(f"No focus profile for prefix '{task.prefix.value}', using generic profile")
			return GENERIC_PROFILE
		return profile

	def dispatch(
		self,
		task: TaskDescriptor,
		feedback: Optional[list[ConsolidatedFeedback]] = None,
	) -> FocusProfile:
		"""
		Produce the focus profile for a cycle.

		Args:
			task: The (possibly feedback-carrying) task descriptor
			feedback: Consolidated feedback of the previous cycle, if any

		Returns:
			FocusProfile carrying the task, forwarded unchanged to Phase 1
		"""
		base = self.profile_for(task).model_copy(update={"task": task})
		if not feedback:
			return base

		blockers: list[str] = []
		issues: list[str] = []
		for consolidated in feedback:
			blockers.extend(item.attributed() for item in consolidated.blockers)
			issues.extend(item.attributed() for item in consolidated.issues)

		logger.debug(
			f"Biasing '{base.name}' profile with {len(blockers)} blockers and {len(issues)} issues"
		)
		return base.model_copy(update={
			"blockers_to_address": blockers,
			"carried_issues": issues,
		})


def feedback_lines(items: list[FeedbackItem]) -> list[str]:
	"""Attributed one-line rendering of feedback items."""
	return [item.attributed() for item in items]
