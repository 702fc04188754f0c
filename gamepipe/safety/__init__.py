"""Source safety checks for generated module text."""

from .policy import DEFAULT_POLICY, SafetyPolicy
from .scanner import ScanOutcome, SourceSafetyScanner, scan_files

__all__ = [
    "DEFAULT_POLICY",
    "SafetyPolicy",
    "ScanOutcome",
    "SourceSafetyScanner",
    "scan_files",
]
