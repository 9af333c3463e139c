"""Error types for nostr-backup.

Transport errors are caught at the adapter boundary and turned into
publish outcomes or query failures; only ValidationError is fatal.
"""


class NostrBackupError(Exception):
    """Base class for nostr-backup errors."""


class ConnectivityError(NostrBackupError):
    """A relay or the proxy could not be reached."""


class ProtocolError(NostrBackupError):
    """A relay sent a message that does not follow the wire protocol."""


class ValidationError(NostrBackupError):
    """User input (identifier, kinds, time window) is malformed."""
