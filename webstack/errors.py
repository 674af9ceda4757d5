"""
Error taxonomy for webstack.

Everything raised by the core derives from WebstackError so callers can
catch the whole family at the provisioning boundary.
"""


class WebstackError(Exception):
    """Base class for all webstack errors."""
    pass


class ConfigurationError(WebstackError):
    """
    Raised for invalid or conflicting declarations.

    Duplicate names, malformed CIDR blocks, empty stages and broken artifact
    wiring all end up here. Raised at definition or synthesis time, before any
    external resource creation is attempted.
    """
    pass


class UnresolvedAttributeError(WebstackError):
    """Raised when reading a post-realization attribute that has no value yet."""
    pass


class SecretResolutionError(WebstackError):
    """Raised when a referenced secret does not exist in the external store."""
    pass
