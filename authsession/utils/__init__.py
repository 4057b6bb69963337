"""Shared utility functions for the auth session controller.

Re-exports so that consumers can import directly from ``authsession.utils``.
"""

from authsession.utils.general import prepare_email

__all__ = ["prepare_email"]
