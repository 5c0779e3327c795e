class PortalError(Exception):
    """Base error rendered to clients as ``{"success": false, "error": ...}``."""

    code = "error"
    status = 400
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(PortalError):
    code = "validation_error"
    status = 400
    default_message = "Invalid input"


class ProfileLocked(PortalError):
    code = "profile_locked"
    status = 403
    default_message = "This profile is secured and cannot be edited. Contact an admin."


class RecordNotFound(PortalError):
    code = "not_found"
    status = 404
    default_message = "Record not found"


class SubmissionAlreadyReviewed(PortalError):
    code = "already_reviewed"
    status = 409
    default_message = "Submission has already been reviewed"


class SlideLimitReached(PortalError):
    code = "slide_limit"
    status = 409
    default_message = "Maximum of 5 slides allowed."


class StorageError(PortalError):
    # Clients only ever see the generic message; the cause is chained for logs
    code = "upload_failed"
    status = 502
    default_message = "File upload failed"

    def __init__(self, detail=None):
        super().__init__(self.default_message)
        self.detail = detail or self.default_message

    def __str__(self):
        return self.detail
