from __future__ import annotations

import hashlib
import secrets


ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 200_000


def hash_password(password: str, pepper: str = "") -> str:
    """
    Return a self-describing hash: ``algorithm$iterations$salt$digest``.

    The pepper is never stored; it has to come from configuration on every
    verification.
    """

    salt = secrets.token_hex(16)
    digest = _digest(password, salt, pepper, ITERATIONS)
    return f"{ALGORITHM}${ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str, pepper: str = "") -> bool:
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False
    return secrets.compare_digest(_digest(password, salt, pepper, rounds), expected)


def _digest(password: str, salt: str, pepper: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        (password + pepper).encode(),
        salt.encode(),
        iterations,
    ).hex()
