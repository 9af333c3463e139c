"""Input decoding: author identifiers, kinds and time windows."""

import re
import time
from typing import Iterable

from nostr_sdk import PublicKey

from .errors import ValidationError

HEX_PUBKEY = re.compile(r"^[0-9a-f]{64}$")
MAX_KIND = 65535
SECONDS_PER_DAY = 24 * 60 * 60


def decode_pubkey(value: str) -> str:
    """Return the hex public key for an npub or hex identifier.

    Raises:
        ValidationError: If the identifier is neither.
    """
    value = value.strip()

    if value.startswith("npub"):
        try:
            return PublicKey.parse(value).to_hex()
        except Exception as e:
            raise ValidationError(f"Invalid npub: {value}") from e

    if HEX_PUBKEY.match(value):
        return value

    raise ValidationError(f"Invalid npub/pubkey format: {value}")


def parse_kinds(values: str | int | Iterable[str | int]) -> list[int]:
    """Flatten kind arguments into a list of ints.

    Accepts a single value, a comma-separated string or a list mixing both,
    e.g. ``["1,6", "7"]`` -> ``[1, 6, 7]``.
    """
    if isinstance(values, (str, int)):
        values = [values]

    kinds: list[int] = []
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if not part:
                continue
            try:
                kind = int(part)
            except ValueError as e:
                raise ValidationError(f"Invalid event kind: {part!r}") from e
            if not 0 <= kind <= MAX_KIND:
                raise ValidationError(f"Event kind {kind} out of range (0-{MAX_KIND})")
            kinds.append(kind)

    if not kinds:
        raise ValidationError("At least one event kind is required")
    return list(dict.fromkeys(kinds))


def resolve_window(
    since: int | None = None,
    until: int | None = None,
    days: int | None = None,
    now: float | None = None,
) -> tuple[int | None, int | None]:
    """Work out the (since, until) window.

    An explicit ``since`` wins over ``days``; ``days=0`` leaves the
    window open at the start.
    """
    if days is not None and days < 0:
        raise ValidationError(f"--days must not be negative: {days}")

    if since is None and days:
        current = int(now if now is not None else time.time())
        since = current - days * SECONDS_PER_DAY

    if since is not None and until is not None and since > until:
        raise ValidationError(f"since ({since}) is after until ({until})")

    return since, until
