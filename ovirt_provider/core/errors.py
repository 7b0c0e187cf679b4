"""Error taxonomy shared by the connection, verification and refresh services."""


INVALID_CREDENTIALS_MESSAGE = "Incorrect user name or password."


class OvirtProviderError(RuntimeError):
    """Base exception for oVirt provider failures."""


class ConnectFailure(OvirtProviderError):
    """Raised when connection parameters are malformed or not acceptable."""


class Unreachable(OvirtProviderError):
    """Raised when the engine cannot be reached (network or DNS failure)."""


class InvalidCredentials(OvirtProviderError):
    """Raised when the engine rejects the supplied credentials."""

    def __init__(self, message: str = INVALID_CREDENTIALS_MESSAGE):
        super().__init__(message)


class LoginError(OvirtProviderError):
    """Raised for any other login failure. Details are only logged."""


class InventoryUnavailable(OvirtProviderError):
    """Raised when no API connection can be established for a refresh."""


__all__ = [
    "INVALID_CREDENTIALS_MESSAGE",
    "OvirtProviderError",
    "ConnectFailure",
    "Unreachable",
    "InvalidCredentials",
    "LoginError",
    "InventoryUnavailable",
]
