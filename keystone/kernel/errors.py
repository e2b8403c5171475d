"""
Kernel error hierarchy.

Bootstrap-phase errors abort startup. Request-phase errors are always
converted into an HTTP response by the error dispatcher.
"""

from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from keystone.schemas.common import ValidationFieldError


class KernelError(Exception):
    """Base exception for all kernel errors."""

    pass


class ConfigurationError(KernelError):
    """Missing or invalid required setting. Fatal during bootstrap."""

    pass


class PluginInitError(KernelError):
    """A plugin failed to initialize."""

    def __init__(self, plugin_name: str, cause: BaseException):
        self.plugin_name = plugin_name
        self.cause = cause
        super().__init__(f"Error on run plugin init {plugin_name}: {cause}")


class LifecycleEventError(KernelError):
    """
    A handler subscribed to a mandatory lifecycle topic failed.

    Mandatory topics are programming invariants; this is never retried.
    """

    def __init__(self, topic: str, cause: BaseException):
        self.topic = topic
        self.cause = cause
        super().__init__(f"Mandatory event '{topic}' failed: {cause}")


class TemplateLoadError(KernelError):
    """Template parsing failed. The partial template set is still installed."""

    def __init__(self, root_dir: str, cause: BaseException, templates: Any = None):
        self.root_dir = root_dir
        self.cause = cause
        self.templates = templates
        super().__init__(f"Error on parse templates in {root_dir}: {cause}")


class RenderError(KernelError):
    """Failed to render an error page. Logged, never escalated."""

    pass


class RequestError(KernelError):
    """An error raised while handling one HTTP request."""

    status_code: int = 500

    def __init__(
        self,
        detail: str = "",
        status_code: Optional[int] = None,
    ):
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail
        super().__init__(detail or f"HTTP {self.status_code}")


def _as_field_error(error: Union[ValidationFieldError, Mapping[str, Any]]) -> ValidationFieldError:
    if isinstance(error, ValidationFieldError):
        return error
    try:
        return ValidationFieldError.model_validate(error)
    except PydanticValidationError as exc:
        raise TypeError(f"Invalid field error {error!r}: {exc}") from exc


class ValidationError(RequestError):
    """
    Request payload failed field validation.

    Always answered with 400, whatever code the caller passes. Field errors
    are ValidationFieldError records or mappings with the same keys; a
    malformed entry raises TypeError on construction.
    """

    status_code = 400

    def __init__(
        self,
        field_errors: List[Union[ValidationFieldError, Mapping[str, Any]]],
        detail: str = "Validation error",
    ):
        self.field_errors = [_as_field_error(e) for e in field_errors]
        super().__init__(detail, status_code=400)
