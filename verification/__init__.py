from .accounts import (
    AccountAlreadyLinked,
    AccountNotFound,
    AccountOwnedElsewhere,
    AlreadyVerified,
    generate_verification_code,
    link_account,
    normalize_profile_url,
    parse_profile_url,
)
from .provider import ExternalProviderError, ProviderConfig, ScraperClient, load_provider_config
from .reconciler import ReconcileSummary, VerificationReconciler
from .verifier import IngestOutcome, SocialAccountVerifier, VerificationRequest

__all__ = [
    "AccountAlreadyLinked",
    "AccountNotFound",
    "AccountOwnedElsewhere",
    "AlreadyVerified",
    "ExternalProviderError",
    "IngestOutcome",
    "ProviderConfig",
    "ReconcileSummary",
    "ScraperClient",
    "SocialAccountVerifier",
    "VerificationReconciler",
    "VerificationRequest",
    "generate_verification_code",
    "link_account",
    "load_provider_config",
    "normalize_profile_url",
    "parse_profile_url",
]
