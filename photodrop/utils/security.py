"""Security utilities: share passwords, owner JWTs, PIN generation, client fingerprints."""

import hashlib
import secrets

import bcrypt
import jwt

from photodrop.config import settings


# --- Share Passwords ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


# --- Owner JWT Tokens ---
# Owner login lives in the account service; tokens it issues carry
# sub=<owner id>, role and type=access, signed with the shared jwt_secret.

def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


# --- PIN ---

def generate_pin(length: int = 4) -> str:
    """Generate a random numeric PIN, leading zeros included."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


# --- Client Fingerprint ---

def client_fingerprint(user_agent: str, ip: str) -> str:
    """Stable anonymous identifier for a browser (not a secret)."""
    return hashlib.sha256(f"{user_agent}_{ip}".encode()).hexdigest()[:16]
