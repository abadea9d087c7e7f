"""Exception hierarchy shared by the ingestion pipeline and the answerer."""

from __future__ import annotations

from pathlib import Path


class PdfChatError(RuntimeError):
    """Base class for all pdfchat errors."""


class DocumentNotFound(PdfChatError):
    """The input path does not resolve to a readable file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"PDF file not found or not readable: {self.path}")


class ExtractionFailure(PdfChatError):
    """Text could not be extracted from a page or from the whole document."""

    def __init__(
        self,
        message: str,
        *,
        page: int | None = None,
        path: Path | str | None = None,
    ) -> None:
        self.page = page
        self.path = Path(path) if path is not None else None
        parts = [message]
        if page is not None:
            parts.append(f"page {page}")
        if self.path is not None:
            parts.append(str(self.path))
        super().__init__(" – ".join(parts))


class IndexNotBuilt(PdfChatError):
    """The vector index was queried before ``build`` was called."""

    def __init__(self) -> None:
        super().__init__("Vector index has not been built yet.")


class NotReady(PdfChatError):
    """``ask`` was called while no document is loaded."""

    def __init__(self, state: str = "idle") -> None:
        self.state = state
        super().__init__(
            f"Pipeline is not ready (state={state}); load a PDF first."
        )


class ServiceUnavailable(PdfChatError):
    """The embedding / generation endpoint could not be reached in time."""

    def __init__(self, endpoint: str, cause: BaseException | None = None) -> None:
        self.endpoint = endpoint
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Model service unavailable at {endpoint}{detail}")


class ModelServiceError(PdfChatError):
    """The model service answered, but with an error status (unknown model, bad request …)."""

    def __init__(self, endpoint: str, status_code: int, cause: BaseException | None = None) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Model service at {endpoint} returned HTTP {status_code}{detail}")
