"""Custom exceptions for the newspaper archive."""


class ArchiveError(Exception):
    """Base exception for the newspaper archive."""
    pass


class SourceError(ArchiveError):
    """Issue page discovery errors."""
    pass


class SourceUnreachable(SourceError):
    """The issue's board page could not be fetched."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DownloadFailed(ArchiveError):
    """A page image could not be downloaded."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class APIError(ArchiveError):
    """External API errors."""

    def __init__(self, message: str, status_code: int = None, response_text: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class NoProviderAvailable(ArchiveError):
    """No configured AI provider could serve the request."""

    def __init__(self, message: str, errors: dict = None):
        super().__init__(message)
        self.errors = errors or {}


class IssueNotFound(ArchiveError):
    """Requested issue does not exist."""

    def __init__(self, issue_id: int):
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id


class ExtractionAlreadyRunning(ArchiveError):
    """An extraction for the issue is already in progress."""

    def __init__(self, issue_id: int):
        super().__init__(f"Extraction already running for issue {issue_id}")
        self.issue_id = issue_id
