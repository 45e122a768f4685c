"""Exception types raised by the reconciliation pipeline and adapters."""


class ServiceMatcherError(Exception):
    """Base class for all service matcher errors."""


class InputValidationError(ServiceMatcherError, ValueError):
    """Uploaded input is malformed, empty, or missing a required column/key.

    Raised before any table state is built, so callers never see partial data.
    """


class MissingConfigError(ServiceMatcherError, RuntimeError):
    """A required setting or credential is absent; no request was made."""


class AdapterRequestError(ServiceMatcherError, RuntimeError):
    """An external API call failed in a way the caller must see."""
