import hashlib
import uuid


def hash_token(s: str) -> str:
    return hashlib.sha256(s.encode()).hexdigest()


def generate_api_key(prefix: str = "SF") -> str:
    """Fresh bearer token; only its hash is stored."""
    return f"{prefix}_{uuid.uuid4().hex}{uuid.uuid4().hex[:16]}"
