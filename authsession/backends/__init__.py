"""
Identity Backend Adapters.

Concrete ``IdentityBackend`` implementations.
"""

from authsession.backends.supabase_backend import (
    SupabaseIdentityBackend,
    SupabaseUser,
    classify_supabase_error,
)

__all__ = ["SupabaseIdentityBackend", "SupabaseUser", "classify_supabase_error"]
