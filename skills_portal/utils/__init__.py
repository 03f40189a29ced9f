from .logger import setup_logging
from .hashing import sha256_hash, stable_key, generate_token

__all__ = ["setup_logging", "sha256_hash", "stable_key", "generate_token"]
