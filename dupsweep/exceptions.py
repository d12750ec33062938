"""
Custom exception hierarchy for the duplicate scanner.

Per-file faults are caught at the file boundary and turned into an
"unavailable" hash or fingerprint. Only configuration faults and
cancellation end a scan early.
"""


class DupSweepError(Exception):
    """Base exception for all scanner errors."""
    pass


class ConfigurationError(DupSweepError):
    """Raised when a scan cannot start (no valid roots, no detection modes)."""
    pass


class ScanCancelledError(DupSweepError):
    """Raised inside workers when the scan's cancellation token fires."""
    pass


class ScanInProgressError(DupSweepError):
    """Raised when a scan is started while another one is running."""
    pass


class InvalidStateTransitionError(DupSweepError):
    """Raised when the scan state machine is asked for an illegal move."""
    pass


class FingerprintError(DupSweepError):
    """Raised when a media decoder cannot produce a fingerprint."""
    pass
