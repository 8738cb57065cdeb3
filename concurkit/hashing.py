"""32-bit Murmur-style hashing helpers."""

MASK32 = 0xFFFFFFFF

__all__ = [
    "MASK32",
    "hash_rot",
    "mhash_add",
    "mhash_finish",
    "hash_add",
    "hash_finish",
    "hash_2words",
    "hash_int",
]


def hash_rot(x: int, k: int) -> int:
    """Rotate the 32-bit value ``x`` left by ``k`` bits."""
    x &= MASK32
    return ((x << k) | (x >> (32 - k))) & MASK32


def _mix_data(hash: int, data: int) -> int:
    # Zero-valued data leaves the hash untouched.
    if not data:
        return hash
    data = (data * 0xCC9E2D51) & MASK32
    data = hash_rot(data, 15)
    data = (data * 0x1B873593) & MASK32
    return hash ^ data


def mhash_add(hash: int, data: int) -> int:
    """Mix one 32-bit word of ``data`` into ``hash``."""
    hash = _mix_data(hash & MASK32, data & MASK32)
    hash = hash_rot(hash, 13)
    return (hash * 5 + 0xE6546B64) & MASK32


def mhash_finish(hash: int) -> int:
    """Apply the final avalanche step to ``hash``."""
    hash &= MASK32
    hash ^= hash >> 16
    hash = (hash * 0x85EBCA6B) & MASK32
    hash ^= hash >> 13
    hash = (hash * 0xC2B2AE35) & MASK32
    hash ^= hash >> 16
    return hash


def hash_add(hash: int, data: int) -> int:
    """Mix ``data`` into ``hash``."""
    return mhash_add(hash, data)


def hash_finish(hash: int, final: int) -> int:
    """Finish ``hash``, folding in ``final`` first."""
    return mhash_finish((hash ^ final) & MASK32)


def hash_2words(x: int, y: int) -> int:
    """Hash two 32-bit words."""
    return hash_finish(hash_add(hash_add(x, 0), y), 8)


def hash_int(x: int, basis: int) -> int:
    """Hash the 32-bit integer ``x`` with the given ``basis``."""
    return hash_2words(x, basis)