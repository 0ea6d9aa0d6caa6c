"""
Workflow Models - Pydantic schemas for tasks, reports, and cycle state.

Defines the values that flow between the dispatcher, the phase
scheduler, the gate, and the iteration controller.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Prefix(str, Enum):
	"""Task type prefix."""
	FIX = "fix"
	FEAT = "feat"
	REFACTOR = "refactor"
	NONE = "none"


class Verdict(str, Enum):
	"""Gate verdict produced by the Phase 3 collaborator."""
	PASS = "PASS"
	CONDITIONAL_PASS = "CONDITIONAL_PASS"
	FAIL = "FAIL"


class PhaseMode(str, Enum):
	"""How collaborators within a phase are dispatched."""
	SEQUENTIAL = "sequential"
	PARALLEL = "parallel"


class FeedbackKind(str, Enum):
	"""Bucket a feedback item belongs to."""
	APPROVED = "approved"
	ISSUE = "issue"
	BLOCKER = "blocker"


class TerminationReason(str, Enum):
	"""Why a workflow run stopped."""
	USER_DECLINED = "user_declined"
	MAX_CYCLES_REACHED = "max_cycles_reached"


class TaskDescriptor(BaseModel):
	"""A parsed task; regenerated with injected feedback every cycle."""
	model_config = ConfigDict(frozen=True)

	prefix: Prefix = Field(default=Prefix.NONE)
	description: str = Field(description="Free-text task description")
	feedback: list[str] = Field(default_factory=list, description="Feedback carried from earlier cycles")

	def with_feedback(self, feedback: list[str]) -> "TaskDescriptor":
		"""Return a copy of this task carrying the given feedback."""
		return TaskDescriptor(prefix=self.prefix, description=self.description, feedback=list(feedback))

	def __str__(self) -> str:
		if self.prefix == Prefix.NONE:
			return self.description
		return f"{self.prefix.value}: {self.description}"


class FocusProfile(BaseModel):
	"""What the implementer and reviewers should pay attention to."""
	model_config = ConfigDict(frozen=True)

	name: str = Field(description="Profile name (e.g. 'bug-fix', 'generic')")
	prefix: Prefix = Field(default=Prefix.NONE)
	emphasis: list[str] = Field(default_factory=list, description="Implementation emphasis")
	review_priorities: list[str] = Field(default_factory=list, description="Where reviewers should look first")
	blockers_to_address: list[str] = Field(default_factory=list)
	carried_issues: list[str] = Field(default_factory=list)
	task: Optional[TaskDescriptor] = Field(default=None, description="Task (with carried feedback) this profile was dispatched for")

	@property
	def is_biased(self) -> bool:
		"""True when the profile carries feedback from an earlier cycle."""
		return bool(self.blockers_to_address or self.carried_issues)


class ArtifactRef(BaseModel):
	"""Read-only reference to the artifact under review."""
	model_config = ConfigDict(frozen=True)

	location: str = Field(description="Where the artifact lives (usually a project path)")
	revision: int = Field(default=0, ge=0)

	def next_revision(self) -> "ArtifactRef":
		return ArtifactRef(location=self.location, revision=self.revision + 1)


class PhaseSpec(BaseModel):
	"""One ordered stage of the workflow."""
	ordinal: int = Field(ge=1, le=3)
	mode: PhaseMode
	collaborators: list[str] = Field(default_factory=list)


class Report(BaseModel):
	"""Structured result returned by a collaborator."""
	collaborator_id: str
	approved: list[str] = Field(default_factory=list)
	issues: dict[str, list[str]] = Field(default_factory=dict, description="Issues grouped by category")
	blockers: list[str] = Field(default_factory=list)
	verdict: Optional[Verdict] = Field(default=None)
	error: Optional[str] = Field(default=None, description="Set when synthesized from a failure")
	reported_at: str = Field(default_factory=lambda: datetime.now().isoformat())

	@property
	def has_blockers(self) -> bool:
		return bool(self.blockers)

	@property
	def failed(self) -> bool:
		return self.error is not None

	@classmethod
	def from_failure(cls, collaborator_id: str, error: str, verdict: Optional[Verdict] = None) -> "Report":
		"""Build the implicit Blocker report recorded for a failed collaborator."""
		return cls(
			collaborator_id=collaborator_id,
			blockers=[f"Collaborator did not complete: {error}"],
			verdict=verdict,
			error=error,
		)


class FeedbackItem(BaseModel):
	"""A single attributed finding."""
	collaborator_id: str
	kind: FeedbackKind
	text: str
	category: Optional[str] = Field(default=None)
	also_raised_by: list[str] = Field(default_factory=list)

	def attributed(self) -> str:
		"""Render as '[collaborator] (category) text'."""
		raisers = ", ".join([self.collaborator_id, *self.also_raised_by])
		if self.category:
			return f"[{raisers}] ({self.category}) {self.text}"
		return f"[{raisers}] {self.text}"


class ConsolidatedFeedback(BaseModel):
	"""Ordered, attributed merge of every report in one phase."""
	phase: int = Field(ge=1, le=3)
	cycle: int = Field(ge=1)
	collaborators: list[str] = Field(default_factory=list)
	items: list[FeedbackItem] = Field(default_factory=list)

	def _of_kind(self, kind: FeedbackKind) -> list[FeedbackItem]:
		return [item for item in self.items if item.kind == kind]

	@property
	def approved(self) -> list[FeedbackItem]:
		return self._of_kind(FeedbackKind.APPROVED)

	@property
	def issues(self) -> list[FeedbackItem]:
		return self._of_kind(FeedbackKind.ISSUE)

	@property
	def blockers(self) -> list[FeedbackItem]:
		return self._of_kind(FeedbackKind.BLOCKER)

	@property
	def has_blockers(self) -> bool:
		return any(item.kind == FeedbackKind.BLOCKER for item in self.items)

	def issues_by_category(self) -> dict[str, list[FeedbackItem]]:
		"""Group issues by category, preserving first-seen category order."""
		grouped: dict[str, list[FeedbackItem]] = {}
		for item in self.issues:
			grouped.setdefault(item.category or "general", []).append(item)
		return grouped

	def raised_by(self, collaborator_id: str) -> list[FeedbackItem]:
		return [
			item for item in self.items
			if item.collaborator_id == collaborator_id or collaborator_id in item.also_raised_by
		]


class CycleState(BaseModel):
	"""Cycle counter and feedback history of one workflow run."""
	cycle: int = Field(default=1, ge=1)
	max_cycles: int = Field(default=3, ge=1)
	feedback_history: list[ConsolidatedFeedback] = Field(default_factory=list)

	@property
	def at_limit(self) -> bool:
		return self.cycle >= self.max_cycles

	def advance(self) -> int:
		"""Move to the next cycle. Never goes past max_cycles."""
		if self.at_limit:
			raise ValueError(f"Cycle {self.cycle} is already the last of {self.max_cycles}")
		self.cycle += 1
		return self.cycle

	def record(self, feedback: ConsolidatedFeedback) -> None:
		self.feedback_history.append(feedback)

	def latest(self, phase: Optional[int] = None) -> Optional[ConsolidatedFeedback]:
		"""Most recent feedback, optionally restricted to one phase."""
		for feedback in reversed(self.feedback_history):
			if phase is None or feedback.phase == phase:
				return feedback
		return None


class GateDecision(BaseModel):
	"""Gate verdict combined with the Phase 2 blocker signal."""
	verdict: Verdict
	phase2_blockers: list[FeedbackItem] = Field(default_factory=list)
	gate_blockers: list[FeedbackItem] = Field(default_factory=list)
	forces_retry: bool
	reason: str = ""


class CycleResult(BaseModel):
	"""Everything produced by one pass through Phase 1-3."""
	cycle: int
	task: TaskDescriptor
	focus: FocusProfile
	artifact: ArtifactRef
	implementation: Report
	implementation_feedback: ConsolidatedFeedback
	review: ConsolidatedFeedback
	gate_report: Report
	gate_feedback: ConsolidatedFeedback
	decision: GateDecision


class WorkflowSummary(BaseModel):
	"""Final summary emitted on termination."""
	domain: str
	task: TaskDescriptor
	cycles_run: int
	final_verdict: Verdict
	reason: TerminationReason
	approved: list[FeedbackItem] = Field(default_factory=list)
	unresolved: list[FeedbackItem] = Field(default_factory=list)
	completed_at: str = Field(default_factory=lambda: datetime.now().isoformat())

	@property
	def unresolved_blockers(self) -> list[FeedbackItem]:
		return [item for item in self.unresolved if item.kind == FeedbackKind.BLOCKER]

	@property
	def unresolved_recommendations(self) -> list[FeedbackItem]:
		return [item for item in self.unresolved if item.kind == FeedbackKind.ISSUE]

	@property
	def passed(self) -> bool:
		"""True when the run ended on a passing gate with no open blockers."""
		return self.final_verdict != Verdict.FAIL and not self.unresolved_blockers
