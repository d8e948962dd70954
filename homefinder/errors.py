"""Errors raised while reading or writing profile rows.

Auth failures are not wrapped: the ``AuthError`` raised by the Supabase client
is handed back to callers as-is.
"""

# PostgREST code for ``.single()`` matching zero rows.
NO_ROWS_CODE = "PGRST116"


class ProfileError(Exception):
    """Base class for profile row failures."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ProfileFetchError(ProfileError):
    """A profile or agent row could not be read."""


class ProfileNotFound(ProfileFetchError):
    """The requested row does not exist (yet)."""


class ProfileWriteError(ProfileError):
    """An insert or update against ``users``/``agents`` failed."""
