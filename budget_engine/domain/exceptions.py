"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ConversionServiceError(DomainException):
    """Currency conversion service returned an error or is unavailable"""

    pass


class RecordStoreError(DomainException):
    """Record store read or write failed"""

    pass


class RecordNotFoundError(RecordStoreError):
    """Record with the given id does not exist in the store"""

    pass


class InvalidRecordError(DomainException):
    """Record payload is malformed or misses required fields"""

    pass


class UnknownEntityTypeError(DomainException):
    """Entity type is not one of the supported financial record types"""

    pass


class ScenarioNotFoundError(DomainException):
    """Scenario does not exist or belongs to another user"""

    pass


class MutationFailedError(DomainException):
    """Create/update was rolled back because the store rejected it"""

    def __init__(self, entity_type: str, operation: str, message: str):
        super().__init__(message)
        self.entity_type = entity_type
        self.operation = operation


class MutationInProgressError(DomainException):
    """Another mutation of the same record has not settled yet"""

    pass
