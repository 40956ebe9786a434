"""
Identity state: the versioned per-user document, its snapshot history and personas.
"""

from identity_brain.services.identity.personas import PersonaService, default_persona_config
from identity_brain.services.identity.store import IdentityStateStore, calculate_completion
from identity_brain.services.identity.versions import VersionService

__all__ = [
    "IdentityStateStore",
    "VersionService",
    "PersonaService",
    "default_persona_config",
    "calculate_completion",
]
