# exceptions raised by the data layer; views catch StoreError at the call site


class StoreError(Exception):
    """Base for every failure the data layer reports to the UI."""


class ValidationError(StoreError, ValueError):
    """Input rejected before anything was written."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or [message]


class DuplicateCartLineError(ValidationError):
    """The cart already holds a line for this product and size."""


class CartNotFoundError(StoreError):
    pass


class EmptyCartError(StoreError):
    pass


class InvalidTransitionError(ValidationError):
    """Order status change outside the lifecycle graph."""


class AuthRequiredError(StoreError, PermissionError):
    """No signed-in identity; the UI answers with the sign-in screen."""


class NotAdminError(AuthRequiredError):
    """Signed in, but the action needs the admin flag."""
