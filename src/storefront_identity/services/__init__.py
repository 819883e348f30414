"""Identity lifecycle services."""

from .login_auditor import LoginAuditor
from .orchestrator import IdentityOrchestrator
from .password_reset import PasswordResetFlow
from .password_service import BcryptPasswordHasher
from .resolvers import StaticGeoResolver, UserAgentDeviceResolver
from .session_registry import NoCurrentSession, SessionRegistry
from .token_service import NullRevocationChecker, StorageRevocationList, TokenIssuer
from .types import (
    LoginAttempt,
    LoginHistoryItem,
    LoginHistoryPage,
    LoginResult,
    LoginStats,
    RegistrationResult,
    SessionPage,
    SessionView,
    TokenClaims,
    TokenPair,
    UserPage,
    UserSnapshot,
    VerificationStatus,
)
from .verification_ledger import IssuedCode, VerificationLedger

__all__ = [
    "BcryptPasswordHasher",
    "IdentityOrchestrator",
    "IssuedCode",
    "LoginAttempt",
    "LoginAuditor",
    "LoginHistoryItem",
    "LoginHistoryPage",
    "LoginResult",
    "LoginStats",
    "NoCurrentSession",
    "NullRevocationChecker",
    "PasswordResetFlow",
    "RegistrationResult",
    "SessionPage",
    "SessionRegistry",
    "SessionView",
    "StaticGeoResolver",
    "StorageRevocationList",
    "TokenClaims",
    "TokenIssuer",
    "TokenPair",
    "UserAgentDeviceResolver",
    "UserPage",
    "UserSnapshot",
    "VerificationLedger",
    "VerificationStatus",
]
