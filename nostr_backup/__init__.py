"""nostr-backup: copy an author's nostr events from source relays to a target relay."""

__version__ = "0.1.0"
