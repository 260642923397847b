from __future__ import annotations


class DirectoryError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(DirectoryError):
    status_code = 400


class PermissionDeniedError(DirectoryError):
    status_code = 403


class NotFoundError(DirectoryError):
    status_code = 404


class ConflictError(DirectoryError):
    status_code = 409
