"""vatfix: EU VAT number validation with cached, rate-limited VIES lookups."""

__version__ = "1.0.0"
