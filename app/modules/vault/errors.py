"""Vault errors raised on the synchronous request path. The router turns them into JSON responses."""


class VaultError(Exception):
    status_code = 500

    def __init__(self, message: str, details: str | None = None, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        if self.hint:
            body["hint"] = self.hint
        return body


class UploadValidationError(VaultError):
    status_code = 400


class NotFoundError(VaultError):
    status_code = 404


class DuplicateDocumentError(VaultError):
    status_code = 409

    def __init__(self, existing: dict):
        super().__init__(
            "This file has already been uploaded",
            hint="Open the existing document instead of uploading it again.",
        )
        self.existing = existing

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["existing_document"] = {"id": str(self.existing["id"]), "file_name": self.existing["file_name"]}
        return body


class StorageError(VaultError):
    status_code = 500


class PersistenceError(VaultError):
    status_code = 500


class AuthenticationError(VaultError):
    status_code = 401


class InvalidRequestError(VaultError):
    status_code = 400
