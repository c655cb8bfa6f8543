class ValidationError(Exception):
    """Bad client input; always surfaced as a 400 before any network call."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
