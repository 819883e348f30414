"""
Storefront identity lifecycle core.

Registration, login, token issuance and rotation, email and phone
verification, password reset and login auditing for the storefront
backend.
"""

from .config import IdentityConfig
from .container import IdentityContainer, build_identity_service
from .exceptions import IdentityError
from .services import IdentityOrchestrator

__version__ = "0.1.0"

__all__ = [
    "IdentityConfig",
    "IdentityContainer",
    "IdentityError",
    "IdentityOrchestrator",
    "__version__",
    "build_identity_service",
]
