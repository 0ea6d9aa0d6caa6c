"""Exceptions raised by the review workflow."""


class AieeTeamError(Exception):
	"""Base exception for aiee-team errors."""
	pass


class CollaboratorError(AieeTeamError):
	"""Raised when a collaborator fails to produce a report."""

	def __init__(self, collaborator_id: str, message: str):
		self.collaborator_id = collaborator_id
		super().__init__(f"{collaborator_id}: {message}")


class CollaboratorTimeoutError(CollaboratorError):
	"""Raised when a collaborator does not return within its timeout."""

	def __init__(self, collaborator_id: str, timeout: float):
		self.timeout = timeout
		super().__init__(collaborator_id, f"timed out after {timeout:g}s")


class ReportParseError(AieeTeamError):
	"""Raised when collaborator output cannot be parsed into a Report."""
	pass


class RegistryError(AieeTeamError):
	"""Raised when phase wiring is invalid."""
	pass


class SchedulerStateError(AieeTeamError):
	"""Raised on an illegal phase scheduler transition."""
	pass
