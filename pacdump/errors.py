"""Exception types raised while querying package databases."""

from __future__ import annotations


class PacdumpError(Exception):
    """Base class for all pacdump errors."""


class NotExplicitError(PacdumpError):
    """Package was filtered out because it is not explicitly installed."""

    def __init__(self, name: str):
        super().__init__(f"'{name}' not explicitly installed, skipped")
        self.name = name


class PackageNotFoundError(PacdumpError):
    """No database contains the requested package."""

    def __init__(self, name: str, where: str = "the databases"):
        super().__init__(f"'{name}' not found in {where}")
        self.name = name


class SignatureDecodeError(PacdumpError):
    """Signature bytes could not be decoded."""


class KeyExtractionError(PacdumpError):
    """Decoded signature carries no usable issuer key IDs."""


class DatabaseRegistrationError(PacdumpError):
    """A database could not be opened or registered. Fatal at startup."""
