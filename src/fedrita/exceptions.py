class FedritaError(Exception):
    """Base exception for Fedrita errors."""
    pass

class ConfigError(FedritaError):
    """Configuration loading specific errors."""
    pass

class AuthError(FedritaError):
    """Authentication backend rejected the operation."""
    pass

class InvalidCredentials(AuthError):
    """Email/password pair was not accepted."""
    pass

class DuplicateRegistration(AuthError):
    """An identity with this email already exists."""
    pass

class DataLookupError(FedritaError):
    """Network or database failure while reading or writing records."""
    pass

class FormValidationError(FedritaError):
    """Missing or inconsistent form input."""
    pass

class PermissionDenied(FedritaError):
    """Caller is authenticated but not allowed to touch the record."""
    pass

class RecordNotFound(FedritaError):
    """Requested record does not exist within the caller's scope."""
    pass
