"""Error taxonomy for publish runs."""

from typing import Optional


class PublishError(Exception):
    """Base class for errors that abort a publish run."""

    category = "publish"

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class InfrastructureError(PublishError):
    """Checkout, toolchain or network failure."""

    category = "infrastructure"


class BuildError(PublishError):
    """Build tool failure or missing build artifacts."""

    category = "build"


class AuthenticationError(PublishError):
    """Identity token or registry credential could not be obtained or used."""

    category = "authentication"


class IdentityError(AuthenticationError):
    """CI identity token could not be retrieved."""


class ExchangeError(AuthenticationError):
    """Registry rejected the identity token exchange."""


class RegistryError(PublishError):
    """Registry rejected an upload."""

    category = "registry"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, step)
        self.status_code = status_code


class RegistryConflictError(RegistryError):
    """Package version already exists and republish is disabled."""
