"""
Earthdata Login credentials.
"""

from eohub.auth.credentials import CredentialStore
from eohub.auth.storage import FileTokenStorage, MemoryTokenStorage, TokenStorage

__all__ = ["CredentialStore", "TokenStorage", "MemoryTokenStorage", "FileTokenStorage"]
