"""
Review Aggregator - Joins the reports of one phase into attributed feedback.

Items keep the collaborator that raised them, ordered by the order the
reports are handed in (registration order), then by their position
within each report. No dedup or cross-collaborator priority is applied
unless fingerprint merging is switched on.
"""

import hashlib
import logging
import re

from ..models import ConsolidatedFeedback, FeedbackItem, FeedbackKind, Report

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")


def fingerprint(item: FeedbackItem) -> str:
	"""Stable fingerprint of a finding: kind, category and normalized text."""
	normalized = _WS_RE.sub(" ", item.text.strip().lower()).rstrip(".")
	key = f"{item.kind.value}|{(item.category or '').lower()}|{normalized}"
	return hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


def report_items(report: Report) -> list[FeedbackItem]:
	"""Flatten one report into attributed feedback items."""
	cid = report.collaborator_id
	items = [FeedbackItem(collaborator_id=cid, kind=FeedbackKind.APPROVED, text=text) for text in report.approved]
	for category, texts in report.issues.items():
		items.extend(
			FeedbackItem(collaborator_id=cid, kind=FeedbackKind.ISSUE, category=category, text=text)
			for text in texts
		)
	items.extend(FeedbackItem(collaborator_id=cid, kind=FeedbackKind.BLOCKER, text=text) for text in report.blockers)
	return items


class ReviewAggregator:
	"""Merges the reports collected at a phase barrier."""

	def __init__(self, dedupe: bool = False):
		"""
		Args:
			dedupe: Collapse identical findings raised by several collaborators
		"""
		self.dedupe = dedupe

	def consolidate(self, phase: int, cycle: int, reports: list[Report]) -> ConsolidatedFeedback:
		"""
		Merge reports into one ConsolidatedFeedback.

		Args:
			phase: Phase ordinal the reports belong to
			cycle: Current cycle number
			reports: One report per collaborator, in registration order

		Returns:
			ConsolidatedFeedback with approved, issue and blocker buckets
		"""
		items: list[FeedbackItem] = []
		for report in reports:
			items.extend(report_items(report))

		if self.dedupe:
			items = self._merge_duplicates(items)

		feedback = ConsolidatedFeedback(
			phase=phase,
			cycle=cycle,
			collaborators=[r.collaborator_id for r in reports],
			items=items,
		)
		logger.info(
			f"Phase {phase} feedback (cycle {cycle}): "
			f"{len(feedback.approved)} approved, {len(feedback.issues)} issues, "
			f"{len(feedback.blockers)} blockers from {len(reports)} collaborators"
		)
		return feedback

	def _merge_duplicates(self, items: list[FeedbackItem]) -> list[FeedbackItem]:
		"""Keep the first occurrence of each fingerprint, recording later raisers."""
		merged: dict[str, FeedbackItem] = {}
		for item in items:
			key = fingerprint(item)
			first = merged.get(key)
			if first is None:
				merged[key] = item.model_copy(update={"also_raised_by": []})
			elif item.collaborator_id != first.collaborator_id and item.collaborator_id not in first.also_raised_by:
				first.also_raised_by.append(item.collaborator_id)
		if len(merged) < len(items):
			logger.debug(f"Merged {len(items) - len(merged)} duplicate findings")
		return list(merged.values())
