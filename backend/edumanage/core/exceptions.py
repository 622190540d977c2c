class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class CredentialError(AppError):
    """Raised when an email/password pair is rejected. Terminal for the attempt."""
    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, status_code=401)


class ProfileProvisionError(AppError):
    """Raised when the profile for a principal cannot be read or created."""
    def __init__(self, message: str = "Unable to load or create the user profile"):
        super().__init__(message, status_code=503)


class DuplicateProfileError(AppError):
    """Raised by a profile repository when a profile already exists for the user."""
    def __init__(self, user_id: str):
        super().__init__(f"Profile for user {user_id} already exists", status_code=409)
        self.user_id = user_id


class OtpIssueError(AppError):
    """Raised when a one-time code could not be issued. Retryable."""
    def __init__(self, message: str = "Unable to send verification code. Please try again."):
        super().__init__(message, status_code=503)


class OtpMismatchError(AppError):
    """Raised when a one-time code does not match, has expired, or is empty."""
    def __init__(self, message: str = "Invalid or expired verification code"):
        super().__init__(message, status_code=400)


class GateStateError(AppError):
    """Raised when a gate operation is not valid in the current gate state."""
    def __init__(self, message: str, state: str):
        super().__init__(message, status_code=409, details={"state": state})


class EnrollmentStateError(AppError):
    """Raised when there is no pending two-factor enrollment to act on."""
    def __init__(self, message: str = "No pending two-factor enrollment"):
        super().__init__(message, status_code=409)


class SettingsUnavailableError(AppError):
    """Raised when the settings store cannot be read or written."""
    def __init__(self, message: str = "Settings are temporarily unavailable. Please try again."):
        super().__init__(message, status_code=503)


class DeviceStateError(AppError):
    """Raised when device-scoped state cannot be read or written."""
    def __init__(self, message: str = "Session state is temporarily unavailable. Please try again."):
        super().__init__(message, status_code=503)


class VerificationRequiredError(AppError):
    def __init__(self):
        super().__init__("Second-factor verification required", status_code=403)


class ScheduleWriteError(AppError):
    """Raised when a single schedule record write fails."""
    def __init__(self, record_id: str, message: str = "Unable to update class"):
        super().__init__(f"{message} {record_id}", status_code=500, details={"record_id": record_id})
        self.record_id = record_id


class SwapPartialFailure(AppError):
    """Second write of a swap failed; the first write was compensated."""
    def __init__(self, original: Exception, class_a_id: str, class_b_id: str):
        super().__init__(
            f"Swap failed and was rolled back: {original}",
            status_code=409,
            details={"class_a_id": class_a_id, "class_b_id": class_b_id},
        )
        self.original = original


class SwapCompensationFailure(AppError):
    """Compensating write failed after a partial swap. Schedule is inconsistent."""
    def __init__(self, original: Exception, compensation_error: Exception, class_a_id: str, class_b_id: str):
        super().__init__(
            "Swap failed and rollback did not complete; "
            f"class {class_a_id} holds the schedule of class {class_b_id}. Manual correction required.",
            status_code=500,
            details={
                "class_a_id": class_a_id,
                "class_b_id": class_b_id,
                "original_error": str(original),
                "compensation_error": str(compensation_error),
            },
        )
        self.original = original
        self.compensation_error = compensation_error
