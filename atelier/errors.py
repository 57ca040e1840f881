"""Exception types shared by the atelier command-line tools."""


class AtelierError(Exception):
    """Base class for errors that end a run before any item is processed."""


class UsageError(AtelierError):
    """Bad or missing command-line flags. The CLI prints help and exits 1."""


class ValidationError(AtelierError, ValueError):
    """
    Inputs failed validation: missing manifest or source, malformed S3 URI,
    directory source without recursion, nothing to process, missing tools or
    credentials.
    """
