import secrets

from passlib.context import CryptContext

# pbkdf2_sha256 has no 72-byte input limit; bcrypt stays verifiable for hashes
# imported from the previous backend when its backend is installed.
_password_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    default="pbkdf2_sha256",
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return _password_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _password_context.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def generate_code() -> str:
    return str(100_000 + secrets.randbelow(900_000))
