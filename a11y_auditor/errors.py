"""
Error types raised by the scanner

Every fatal error carries a stable ``kind`` discriminant and a ``context``
dictionary so callers can render a precise message without parsing text.
"""

from typing import Any, Dict, Optional


class ScanError(Exception):
    """Base class for all scanner errors"""

    kind = "scan-error"

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": dict(self.context),
        }


class LaunchError(ScanError):
    """Browser could not be launched (usually missing browser binaries)"""

    kind = "browser-launch-failed"

    def __init__(self, browser_type: str, reason: Optional[str] = None):
        message = f"Failed to launch {browser_type} browser"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message, context={"browser_type": browser_type, "reason": reason}
        )


class NavigationError(ScanError):
    """Navigation to the target URL failed or timed out"""

    kind = "navigation-failed"

    def __init__(
        self,
        url: str,
        reason: Optional[str] = None,
        timed_out: bool = False,
        timeout: Optional[int] = None,
    ):
        if timed_out:
            message = f"Navigation to {url} timed out after {timeout}ms"
        else:
            message = f"Navigation to {url} failed"
            if reason:
                message = f"{message}: {reason}"
        super().__init__(
            message,
            recoverable=timed_out,
            context={
                "url": url,
                "reason": reason,
                "timed_out": timed_out,
                "timeout": timeout,
            },
        )


class FrameworkNotDetectedError(ScanError):
    """A component framework was required but not found on the page"""

    kind = "framework-not-detected"

    def __init__(self, url: str, framework: str = "react"):
        super().__init__(
            f"{framework.capitalize()} was not detected on {url}. "
            f"Component attribution requires a {framework.capitalize()} application.",
            context={"url": url, "framework": framework},
        )


class MaxRetriesExceededError(ScanError):
    """The accessibility checker kept failing after every retry"""

    kind = "max-retries-exceeded"

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        last = str(last_error) if last_error else "Unknown"
        super().__init__(
            f"Failed to scan after {attempts} attempts. Last error: {last}",
            context={"attempts": attempts, "last_error": last},
        )


class ScanCancelledError(ScanError):
    """The caller's overall scan timeout elapsed"""

    kind = "cancelled"

    def __init__(self, state: str, timeout: Optional[float] = None):
        super().__init__(
            f"Scan cancelled during {state} (overall timeout {timeout}s exceeded)",
            context={"state": state, "timeout": timeout},
        )


class ConfigurationError(ScanError):
    """Invalid configuration value"""

    kind = "invalid-configuration"

    def __init__(self, message: str, invalid_field: Optional[str] = None):
        super().__init__(message, context={"invalid_field": invalid_field})


class InvalidUrlError(ScanError):
    """The URL to scan is malformed or uses an unsupported scheme"""

    kind = "invalid-url"

    def __init__(self, url: str, reason: Optional[str] = None):
        message = f"Invalid URL: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, context={"url": url, "reason": reason})


class ScanStateError(ScanError):
    """An illegal state machine transition was attempted"""

    kind = "invalid-state-transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            context={"current": current, "requested": requested},
        )
