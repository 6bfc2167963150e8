"""Exception hierarchy for multistore."""

from typing import Optional


class MultistoreError(Exception):
    """Base exception for all multistore errors."""

    pass


class ValidationError(MultistoreError):
    """Raised when a storage configuration fails validation."""

    pass


class SigningError(MultistoreError):
    """Raised when a request cannot be signed."""

    pass


class ProviderNotFoundError(SigningError):
    """Raised when a provider key is not in the registry."""

    pass


class CryptoError(MultistoreError):
    """Base class for credential encryption failures. Never retryable."""

    pass


class EncryptionError(CryptoError):
    """Raised when a credential cannot be encrypted."""

    pass


class DecryptionError(CryptoError):
    """Raised when a credential blob fails authentication or decoding."""

    pass


class ConfigurationNotFoundError(MultistoreError):
    """Raised when a storage configuration id is unknown."""

    pass


class NoActiveStorageError(MultistoreError):
    """Raised when an operation needs an active configuration and none is set."""

    pass


class TransferError(MultistoreError):
    """Raised when an HTTP exchange fails or returns a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.status_text = status_text
        self.error_code = error_code


class ResponseParseError(TransferError):
    """Raised when a response body cannot be parsed."""

    pass
