"""bcrypt password hashing helpers."""

from __future__ import annotations

import bcrypt

from ..config import get_settings

# bcrypt ignores everything past 72 bytes and recent releases reject longer
# inputs outright, so both operations truncate identically.
_BCRYPT_MAX_BYTES = 72


def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plaintext: str, *, rounds: int | None = None) -> str:
    """Return a salted, self-describing bcrypt hash for ``plaintext``.

    Parameters
    ----------
    plaintext:
        The password as supplied by the user.
    rounds:
        Optional cost factor override; defaults to ``Settings.bcrypt_rounds``.

    Returns
    -------
    str
        A ``$2b$<cost>$<salt><digest>`` string. A fresh salt is drawn on every
        call, so hashing the same password twice yields different strings.
    """

    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=cost)).decode("ascii")


def verify_password(plaintext: str, hashed: str) -> bool:
    """Return ``True`` when ``plaintext`` matches the stored bcrypt ``hashed`` value."""
    try:
        return bcrypt.checkpw(_encode(plaintext), hashed.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        # malformed stored hash
        return False
