# pkibootstrap/errors.py


class CertsError(Exception):
    """Base class for every failure raised while building trust material."""


class ValidationError(CertsError):
    """A certificate request config violates a precondition."""


class KeyGenerationError(CertsError):
    pass


class CAGenerationError(CertsError):
    """Wraps the key-generation or signing failure behind a self-signed CA."""


class SigningError(CertsError):
    pass


class EncodingError(CertsError):
    pass
