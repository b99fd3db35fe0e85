"""
Throttle Classification
Decides whether a store error is a transient rate-limit rejection or a fatal failure
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from pymongo.errors import BulkWriteError, OperationFailure

# Cosmos DB for MongoDB reports RU exhaustion as 16500 (TooManyRequests)
DEFAULT_THROTTLE_CODES = frozenset({16500, 429})
DEFAULT_THROTTLE_SIGNATURES = ("request rate is large",)


class ThrottleClassifier(ABC):
    """
    Base class for error classifiers

    A classifier only answers one question: is this error a rate-limit
    rejection that will go away if we wait and try again?
    """

    @abstractmethod
    def is_transient(self, error: BaseException) -> bool:
        """Return True when the error is a throttle - must be implemented by subclasses"""
        pass

    def __call__(self, error: BaseException) -> bool:
        return self.is_transient(error)


class MessageSignatureClassifier(ThrottleClassifier):
    """Case-insensitive substring match of the error message against known signatures"""

    def __init__(self, signatures: Iterable[str] = DEFAULT_THROTTLE_SIGNATURES):
        self.signatures = tuple(s.lower() for s in signatures if s)
        if not self.signatures:
            raise ValueError("At least one throttle signature is required")

    def is_transient(self, error: BaseException) -> bool:
        messages = [str(error)]
        if isinstance(error, OperationFailure) and error.details:
            errmsg = error.details.get("errmsg")
            if errmsg:
                messages.append(str(errmsg))

        for message in messages:
            lowered = message.lower()
            if any(signature in lowered for signature in self.signatures):
                return True
        return False


class ErrorCodeClassifier(ThrottleClassifier):
    """
    Structured classifier using the server error code

    Falls back to message matching for errors that carry no usable code,
    e.g. wrapped driver errors or proxies that rewrite the failure.
    """

    def __init__(self, codes: Iterable[int] = DEFAULT_THROTTLE_CODES,
                 fallback: Optional[ThrottleClassifier] = None):
        self.codes = frozenset(codes)
        self.fallback = fallback or MessageSignatureClassifier()

    def is_transient(self, error: BaseException) -> bool:
        if isinstance(error, BulkWriteError):
            write_errors = (error.details or {}).get("writeErrors") or []
            if write_errors and all(e.get("code") in self.codes for e in write_errors):
                return True
        elif isinstance(error, OperationFailure) and error.code in self.codes:
            return True

        return self.fallback.is_transient(error)


def create_throttle_classifier(signatures: Optional[Iterable[str]] = None,
                               codes: Iterable[int] = DEFAULT_THROTTLE_CODES) -> ThrottleClassifier:
    """Factory function for the default classifier chain"""
    fallback = MessageSignatureClassifier(signatures or DEFAULT_THROTTLE_SIGNATURES)
    return ErrorCodeClassifier(codes=codes, fallback=fallback)


_default_classifier = create_throttle_classifier()


def is_throttled(error: BaseException) -> bool:
    """Check an error with the default classifier"""
    return _default_classifier.is_transient(error)
