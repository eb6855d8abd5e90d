"""
Custom exceptions for the harvesting pipeline.
"""


class ScrapingError(Exception):
    """Base exception for all scraping-related errors."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        self.message = message
        self.url = url
        self.status_code = status_code
        super().__init__(self.message)


class NavigationError(ScrapingError):
    """Raised when a goto, go-back or click navigation fails or times out."""

    def __init__(self, message: str, url: str = None, timeout: float = None):
        self.timeout = timeout
        super().__init__(message, url)


class ContainerNotFoundError(ScrapingError):
    """Raised when none of the expected list/detail containers render in time."""

    def __init__(self, message: str, selectors: list = None, url: str = None):
        self.selectors = list(selectors or [])
        super().__init__(message, url)


class ConfigurationError(ScrapingError):
    """Raised for unknown sources or invalid adapter configuration."""

    def __init__(self, message: str, source: str = None):
        self.source = source
        super().__init__(message)


class DriverLaunchError(ScrapingError):
    """Raised when the headless browser cannot be started."""


class DeliveryError(ScrapingError):
    """Raised when a webhook batch is rejected or cannot be sent."""

    def __init__(self, message: str, url: str = None, status_code: int = None, body: str = None):
        self.body = body
        super().__init__(message, url, status_code)
