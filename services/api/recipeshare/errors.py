from __future__ import annotations


class RecipeShareError(Exception):
    pass


class NotFoundError(RecipeShareError):
    def __init__(self, resource: str, resource_id: str | None = None):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(RecipeShareError):
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message)


class ConflictError(RecipeShareError):
    def __init__(self, message: str = "Conflicting state"):
        super().__init__(message)


class AuthorizationError(RecipeShareError):
    def __init__(self, message: str = "Not allowed to act on this resource"):
        super().__init__(message)
