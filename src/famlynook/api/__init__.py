"""HTTP collaborators for the FamlyNook REST API."""

from .transport import ApiTransport  # noqa: F401

__all__ = ["ApiTransport"]
