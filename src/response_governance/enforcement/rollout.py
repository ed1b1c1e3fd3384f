"""
Schema Rollout Controller -- deterministic per-user sampling for enforcement.

The bucket is derived from the user id alone, so the same user lands in the
same bucket across restarts and across horizontally scaled instances, with
no assignment table to persist.

The hash is the 31-multiplier string hash over UTF-16 code units, reduced
mod 2**32 at every step. That matches the JavaScript services that bucket
the same users, so rollout state agrees across languages.

This gate decides only whether validation/rewrite runs. Crisis and
onboarding traffic is bypassed before it is ever consulted.
"""

from ..config import clamp_percentage

HASH_MULTIPLIER = 31
HASH_MODULUS = 2**32
BUCKET_COUNT = 100


def _utf16_code_units(value: str):
    data = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield int.from_bytes(data[i:i + 2], "little")


def stable_hash(user_id: str | None) -> int:
    """Unsigned 32-bit hash of a user id. None hashes like the empty string."""
    h = 0
    for unit in _utf16_code_units(str(user_id) if user_id is not None else ""):
        h = (h * HASH_MULTIPLIER + unit) % HASH_MODULUS
    return h


def bucket_for(user_id: str | None) -> int:
    """Bucket in [0, 100) for a user id."""
    return stable_hash(user_id) % BUCKET_COUNT


def should_enforce(user_id: str | None, percentage: float | int) -> bool:
    """Whether schema enforcement runs for this user at this rollout percentage.

    0 disables everyone and 100 enables everyone, whatever the hash.
    """
    pct = clamp_percentage(percentage, default=0)
    if pct <= 0:
        return False
    if pct >= 100:
        return True
    return bucket_for(user_id) < pct
