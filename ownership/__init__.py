from .assets import (
    NewAsset,
    OwnershipCheck,
    PersistenceError,
    RawVideoAssetStore,
    StoredAsset,
    check_video_ownership,
)
from .claims import ClaimRegistry
from .fingerprint import Fingerprint, detect_platform, extract_video_identifiers, fingerprint, normalize_video_url
from .matching import account_matches_url, normalize_handle, resolve_account_ownership
from .resolver import OwnershipResolver, ResolutionSummary

__all__ = [
    "ClaimRegistry",
    "Fingerprint",
    "NewAsset",
    "OwnershipCheck",
    "OwnershipResolver",
    "PersistenceError",
    "RawVideoAssetStore",
    "ResolutionSummary",
    "StoredAsset",
    "account_matches_url",
    "check_video_ownership",
    "detect_platform",
    "extract_video_identifiers",
    "fingerprint",
    "normalize_handle",
    "normalize_video_url",
    "resolve_account_ownership",
]
