"""Helpers: digest computation and comparison."""

from .digest import app_digest, uss_digest, verify_digest
