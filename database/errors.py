class FlashcardError(Exception):
    """Base class for every error the store, codec and bundles raise."""


class ValidationError(FlashcardError):
    """A required field is empty or a value is out of range. Nothing was written."""


class NotFoundError(FlashcardError):
    """The referenced deck or card does not exist. Nothing was written."""


class FormatError(FlashcardError):
    """A bundle or encoded image could not be parsed. Raised before any write."""


class PersistenceError(FlashcardError):
    """The durable snapshot could not be read or written."""
