"""Custom exceptions for Readable Archive."""


class ReadableArchiveError(Exception):
    """Base exception for all Readable Archive errors."""

    pass


# ─── Extraction Errors ───────────────────────────────────────────


class ExtractError(ReadableArchiveError):
    """Base exception for extraction errors."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(f"[{url}] {message}")


class FetchError(ExtractError):
    """Raised when a document cannot be retrieved."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            reason = f"Invalid status code ({status_code}): {reason}"
        super().__init__(url, f"Fetch failed: {reason}")


class DocumentParseError(ExtractError):
    """Raised when a fetched document cannot be parsed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(url, f"Parse failed: {reason}")


class DestinationBlockedError(ReadableArchiveError):
    """Raised when a request targets a denied network."""

    def __init__(self, url: str, ip: str, rule: str) -> None:
        self.url = url
        self.ip = ip
        self.rule = rule
        super().__init__(f"[{url}] Destination {ip} is blocked by {rule}")


# ─── Site Configuration Errors ───────────────────────────────────


class SiteConfigError(ReadableArchiveError):
    """Raised when a site configuration file cannot be decoded."""

    def __init__(self, file: str, reason: str) -> None:
        self.file = file
        self.reason = reason
        super().__init__(f"[{file}] {reason}")


# ─── Archiver Errors ─────────────────────────────────────────────


class ArchiverError(ReadableArchiveError):
    """Base exception for resource archiver errors."""

    def __init__(self, uri: str, message: str) -> None:
        self.uri = uri
        self.message = message
        super().__init__(f"[{uri}] {message}")


class SkippedURLError(ArchiverError):
    """Raised when a reference is not something that can be archived."""

    def __init__(self, uri: str, reason: str = "skipped url") -> None:
        super().__init__(uri, reason)


class AssetDownloadError(ArchiverError):
    """Raised when an asset download fails."""

    def __init__(self, uri: str, reason: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(uri, f"Download failed: {reason}")


class AssetContentError(ArchiverError):
    """Raised when a downloaded asset does not match what the document expects."""

    def __init__(self, uri: str, reason: str) -> None:
        super().__init__(uri, f"Invalid content: {reason}")


# ─── Image Errors ────────────────────────────────────────────────


class ImageError(ReadableArchiveError):
    """Base exception for image transcoding errors."""

    pass


class ImageTooBigError(ImageError):
    """Raised when an image exceeds the decoding pixel ceiling."""

    def __init__(self, width: int | None, height: int | None, max_pixels: int) -> None:
        self.width = width
        self.height = height
        self.max_pixels = max_pixels
        if width is None or height is None:
            super().__init__(f"Image is too big (> {max_pixels} pixels)")
        else:
            super().__init__(f"Image is too big ({width}x{height} > {max_pixels} pixels)")


class UnsupportedImageError(ImageError):
    """Raised when image data cannot be decoded."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Unsupported image: {reason}")


# ─── Search String Errors ────────────────────────────────────────


class SearchStringError(ReadableArchiveError):
    """Raised when a search string cannot be parsed."""

    pass


# ─── Validation Errors ───────────────────────────────────────────


class ValidationError(ReadableArchiveError):
    """Raised when input validation fails."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"Validation error for '{field}': {message}")


class InvalidURLError(ValidationError):
    """Raised when a URL is invalid."""

    def __init__(self, url: str, reason: str = "Invalid URL format") -> None:
        self.url = url
        super().__init__("url", f"{reason}: {url}")
