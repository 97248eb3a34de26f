"""Error types raised by autocommit."""


class AutocommitError(Exception):
    """Base class for all autocommit errors."""


class ValidationError(AutocommitError):
    """Bad user input: path, frequency or setting."""


class RepositoryError(AutocommitError):
    """Path is not a readable git working tree."""


class CommitError(AutocommitError):
    """Staging or commit creation failed."""


class ExternalServiceError(AutocommitError):
    """Summarization service failed. Always recovered by the message generator."""


class RegistryError(AutocommitError):
    """Schedule persistence or trigger (un)installation failed."""


class NotFoundError(RegistryError):
    """No schedule is registered for the path."""


class AlreadyExistsError(RegistryError):
    """A schedule is already registered for the path."""
