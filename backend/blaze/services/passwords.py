"""
Blaze Backend — Password Hashing
=================================

What:  Salted PBKDF2-SHA256 hashes for the users table.
Format: "<hex salt>:<hex key>", so the stored value is self-describing and
        fits the 255-char password column.
"""

import hashlib
import hmac
import os

ITERATIONS = 100_000


def hash_password(password: str) -> str:
    salt = os.urandom(32)
    key = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS)
    return salt.hex() + ":" + key.hex()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password and for a malformed or missing hash."""
    try:
        salt_hex, key_hex = hashed_password.split(":", 1)
        salt = bytes.fromhex(salt_hex)
        expected_key = bytes.fromhex(key_hex)
    except (AttributeError, ValueError):
        return False
    actual_key = hashlib.pbkdf2_hmac("sha256", plain_password.encode("utf-8"), salt, ITERATIONS)
    return hmac.compare_digest(actual_key, expected_key)


# Login compares against this when the username is unknown, so both
# failure paths cost one PBKDF2 run
DUMMY_HASH = hash_password("not-a-real-password")
