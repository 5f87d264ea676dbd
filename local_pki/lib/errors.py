"""Exception taxonomy for PKI operations."""


class PkiError(Exception):
    """Base class for all local PKI failures."""

    message: str

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PkiError):
    """Raised when caller input is malformed (e.g. an empty domain list)."""


class StateError(PkiError):
    """Raised when an operation runs before its prerequisite state exists."""


class NotFoundError(PkiError):
    """Raised when a registry entry does not exist."""


class CryptoToolError(PkiError):
    """Raised when an external cryptographic process fails or times out.

    Carries the diagnostic text captured from the process.
    """

    output: str

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(f"{message}: {output}" if output else message)


class ToolNotFoundError(PkiError):
    """Raised when the external binary cannot be launched."""

    binary: str

    def __init__(self, binary: str) -> None:
        self.binary = binary
        super().__init__(f"executable not found: {binary}")


class TrustInstallError(PkiError):
    """Trust-store installation failure.

    Never escapes TrustInstaller; always converted to a TrustResult.
    """
