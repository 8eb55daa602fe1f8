"""
Convocate - Errors
Typed failures raised by the pipeline and translated to HTTP responses by the routes.
"""


class ConvocateError(Exception):
    """Base class for all service errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(ConvocateError):
    """The caller sent something we cannot use. Never retried."""
    status_code = 400


class NoFilesError(InputError):
    def __init__(self):
        super().__init__("No files provided")


class TooManyFilesError(InputError):
    def __init__(self, max_files: int):
        super().__init__(f"Too many files. Maximum {max_files} files allowed.")


class UnsupportedFileTypeError(InputError):
    def __init__(self, filename: str, allowed):
        allowed_list = ", ".join(allowed[:-1]) + f", and {allowed[-1]}" if len(allowed) > 1 else allowed[0]
        super().__init__(
            f"Unsupported file type: {filename}. Only {allowed_list} files are accepted."
        )


class FileTooLargeError(InputError):
    def __init__(self, filename: str, max_mb: float):
        super().__init__(f"File {filename} is too large. Maximum file size is {max_mb:g}MB.")


class UnreadableFileError(InputError):
    def __init__(self, filename: str, reason: str):
        super().__init__(f"Could not read {filename}: {reason}")


class NoValidMessagesError(InputError):
    def __init__(self):
        super().__init__("No valid messages found in uploaded files")


class InsufficientMessagesError(InputError):
    def __init__(self, minimum: int):
        super().__init__(
            f"No participants have enough messages for analysis. Each person needs at least "
            f"{minimum} messages to create a reliable personality profile."
        )


class InvalidRequestError(InputError):
    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message)


class MessageTooLongError(InputError):
    def __init__(self, max_length: int):
        super().__init__(f"Message too long. Maximum length is {max_length} characters.")


class QuotaExceededError(ConvocateError):
    """A permanent per-client ceiling was hit."""
    status_code = 429


class TurnInProgressError(ConvocateError):
    """Another chat turn from the same client has not finished yet."""
    status_code = 409

    def __init__(self):
        super().__init__("A reply is already being generated. Wait for it before sending another message.")
