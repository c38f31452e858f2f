class ZencoreError(Exception):
    """Base class for zencore-specific errors."""


# Configuration
class PathInvalid(ZencoreError):
    pass


class UnsupportedContainerKind(ZencoreError):
    pass


class InvalidCompressionLevel(ZencoreError):
    pass


class UnknownDigestAlgorithm(ZencoreError):
    pass


class UnknownCipher(ZencoreError):
    pass


# Cryptography
class KeyDerivationFailure(ZencoreError):
    pass


class EnvelopeFormatError(ZencoreError):
    pass


class DecryptionFailed(ZencoreError):
    def __init__(self, message: str = "decryption failed (wrong password or corrupted data)"):
        super().__init__(message)


# Integrity / persistence
class ChecksumMismatch(ZencoreError):
    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(f"checksum mismatch for {path}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class StateCorruption(ZencoreError):
    pass
