"""
Gate Evaluator - Turns the Phase 3 report into a verdict.

Key Principle: a Blocker always forces a retry. Phase 2 blockers are an
independent, higher-priority signal than the gate verdict; only a clean
review phase plus PASS or CONDITIONAL_PASS lets the workflow ask the
user whether to continue.
"""

import logging
from typing import Optional

from ..models import ConsolidatedFeedback, GateDecision, Report, Verdict

logger = logging.getLogger(__name__)

PASSING_VERDICTS = (Verdict.PASS, Verdict.CONDITIONAL_PASS)


def evaluate_verdict(report: Report) -> Verdict:
	"""
	Derive the gate verdict from a Phase 3 report.

	- A missing verdict is treated as FAIL.
	- Blockers in the gate report downgrade any verdict to FAIL.
	"""
	if report.verdict is None:
		logger.warning(f"Gate report from {report.collaborator_id} has no verdict, treating as FAIL")
		return Verdict.FAIL
	if report.has_blockers and report.verdict != Verdict.FAIL:
		logger.warning(
			f"Gate report from {report.collaborator_id} is {report.verdict.value} "
			f"but lists {len(report.blockers)} blockers, treating as FAIL"
		)
		return Verdict.FAIL
	return report.verdict


class GateEvaluator:
	"""Combines the gate verdict with the review-phase blocker signal."""

	def decide(
		self,
		gate_report: Report,
		review: ConsolidatedFeedback,
		gate_feedback: Optional[ConsolidatedFeedback] = None,
		extra_blockers: Optional[ConsolidatedFeedback] = None,
	) -> GateDecision:
		"""
		Produce the gate decision for a cycle.

		Args:
			gate_report: The Phase 3 report
			review: Consolidated Phase 2 feedback
			gate_feedback: Consolidated Phase 3 feedback (for attribution)
			extra_blockers: Feedback whose blockers also force a retry
				(the implementer's failure blocker, when Phase 1 failed)

		Returns:
			GateDecision; forces_retry is True on FAIL or any blocker
		"""
		verdict = evaluate_verdict(gate_report)
		phase2_blockers = list(review.blockers)
		if extra_blockers is not None:
			phase2_blockers = list(extra_blockers.blockers) + phase2_blockers
		gate_blockers = list(gate_feedback.blockers) if gate_feedback is not None else []

		if phase2_blockers:
			reason = f"{len(phase2_blockers)} blocker(s) raised during review"
			if verdict in PASSING_VERDICTS:
				reason += f" (gate said {verdict.value})"
			forces_retry = True
		elif verdict == Verdict.FAIL:
			reason = "gate verdict FAIL"
			forces_retry = True
		else:
			reason = f"gate verdict {verdict.value}, no blockers"
			forces_retry = False

		logger.info(f"Gate decision: {verdict.value}, retry={'yes' if forces_retry else 'no'} ({reason})")
		return GateDecision(
			verdict=verdict,
			phase2_blockers=phase2_blockers,
			gate_blockers=gate_blockers,
			forces_retry=forces_retry,
			reason=reason,
		)
