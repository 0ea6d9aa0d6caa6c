"""
Collaborators - The uniform interface to implementers and reviewers.

Every collaborator, whatever it wraps, is invoked as
``await collaborator.review(artifact, focus)`` and returns a Report.

Provided adapters:
- CallableCollaborator: wraps an in-process function (sync or async)
- CommandCollaborator: runs an external command and parses its JSON output
"""

import asyncio
import inspect
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from .errors import CollaboratorError
from .models import ArtifactRef, FocusProfile, Report
from .schemas import parse_report

logger = logging.getLogger(__name__)

ReviewFn = Callable[[ArtifactRef, FocusProfile], Union[Report, Awaitable[Report]]]


@runtime_checkable
class Collaborator(Protocol):
	"""Anything that can review (or implement against) an artifact."""

	collaborator_id: str

	async def review(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		...


class CallableCollaborator:
	"""
	Adapts a plain function to the Collaborator interface.

	The function may be sync or async and must return a Report. Sync
	functions run in a worker thread.
	"""

	def __init__(self, collaborator_id: str, fn: ReviewFn):
		self.collaborator_id = collaborator_id
		self._fn = fn

	async def review(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		if inspect.iscoroutinefunction(self._fn):
			result = await self._fn(artifact, focus)
		else:
			# Off the event loop
			result = await asyncio.to_thread(self._fn, artifact, focus)
			if inspect.isawaitable(result):
				result = await result
		if not isinstance(result, Report):
			raise CollaboratorError(
				self.collaborator_id,
				f"expected a Report, got {type(result).__name__}",
			)
		if result.collaborator_id != self.collaborator_id:
			result = result.model_copy(update={"collaborator_id": self.collaborator_id})
		return result

	def __repr__(self) -> str:
		return f"CallableCollaborator({self.collaborator_id!r})"


class CommandCollaborator:
	"""
	Runs an external command as a collaborator.

	The request is written to stdin as JSON:
		{"collaborator_id", "phase", "artifact": {...}, "task": {...}, "focus": {...}}
	The command must print a report matching REPORT_SCHEMA on stdout.
	"""

	def __init__(
		self,
		collaborator_id: str,
		command: str,
		phase: int,
		cwd: Optional[str] = None,
	):
		"""
		Initialize the command collaborator.

		Args:
			collaborator_id: Id the report is attributed to
			command: Shell command to run
			phase: Phase ordinal, passed through in the request
			cwd: Working directory (default: the artifact location)
		"""
		self.collaborator_id = collaborator_id
		self.command = command
		self.phase = phase
		self.cwd = cwd

	def build_request(self, artifact: ArtifactRef, focus: FocusProfile) -> str:
		return json.dumps({
			"collaborator_id": self.collaborator_id,
			"phase": self.phase,
			"artifact": artifact.model_dump(),
			"task": focus.task.model_dump(mode="json") if focus.task else None,
			"focus": focus.model_dump(mode="json"),
		})

	async def review(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		cwd = self.cwd or artifact.location
		if not Path(cwd).is_dir():
			raise CollaboratorError(self.collaborator_id, f"working directory not found: {cwd}")

		logger.debug(f"Running {self.collaborator_id}: {self.command}")
		proc = await asyncio.create_subprocess_shell(
			self.command,
			stdin=asyncio.subprocess.PIPE,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			cwd=cwd,
		)
		try:
			stdout, stderr = await proc.communicate(self.build_request(artifact, focus).encode("utf-8"))
		except asyncio.CancelledError:
			# Timeouts arrive as cancellation; don't leave the child running
			if proc.returncode is None:
				proc.kill()
				await proc.wait()
			raise

		if proc.returncode != 0:
			err = stderr.decode("utf-8", errors="replace").strip()[-500:]
			raise CollaboratorError(
				self.collaborator_id,
				f"command exited with {proc.returncode}: {err or 'no output'}",
			)

		return parse_report(self.collaborator_id, stdout.decode("utf-8", errors="replace"))

	def __repr__(self) -> str:
		return f"CommandCollaborator({self.collaborator_id!r}, {self.command!r})"
