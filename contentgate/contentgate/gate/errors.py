"""Error taxonomy for the content quality gate."""

from typing import List, Optional


class ContentGateError(Exception):
    """Base class for gate errors."""
    pass


class TransportError(ContentGateError):
    """Timeout or network failure talking to the completion provider.

    Retryable on the same model, then on fallback models.
    """

    def __init__(self, message: str, kind: str = "network", model: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.model = model

    @property
    def is_timeout(self) -> bool:
        return self.kind == "timeout"


class GenerationTimeout(TransportError):
    """Overall wall-clock budget for the model attempt sequence exceeded."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message, kind="timeout", model=model)


class ProviderRejection(ContentGateError):
    """Provider refused the request (auth, region, model availability, quota)."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        model: Optional[str] = None,
        retry_same_model: bool = False,
        fallback_allowed: bool = True,
    ):
        super().__init__(message)
        self.status = status
        self.model = model
        self.retry_same_model = retry_same_model
        self.fallback_allowed = fallback_allowed


class EmptyCompletionError(ProviderRejection):
    """Provider answered without any content."""

    def __init__(self, model: Optional[str] = None):
        super().__init__("Provider returned empty content", status=None, model=model,
                         retry_same_model=False, fallback_allowed=True)


class IssueListError(ContentGateError):
    """Error carrying the full human-readable issue list."""

    def __init__(self, prefix: str, issues: List[str]):
        self.issues = list(issues)
        super().__init__(f"{prefix}: {'; '.join(self.issues)}" if self.issues else prefix)


class ValidationFailure(IssueListError):
    """Hard validator issues remained after revision and repair."""

    def __init__(self, issues: List[str]):
        super().__init__("Content failed quality gate", issues)


class ConsistencyFailure(IssueListError):
    """Secondary-language variant could not be made consistent."""

    def __init__(self, issues: List[str]):
        super().__init__("Bilingual consistency failed", issues)
