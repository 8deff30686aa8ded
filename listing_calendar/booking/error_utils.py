# Custom exceptions to be used throughout the project.

class ValidationError(Exception):
    """
    To be raised when user input for a calendar edit is rejected before the period store is touched.
    May be raised under the following circumstances:
        1. Rate input is not a whole number
        2. Rate input is outside of 1 - 32767
        3. No dates were selected on the calendar
        4. A selected date could not be parsed
    """
    def __init__(self, message, *args):
        super().__init__(message, *args)
        self.message = message


class StoreError(Exception):
    """
    To be raised when the period store fails to query, insert or delete.
    Aborts the rest of the bulk operation. Ranges already written are not rolled back.
    """
    def __init__(self, message, *args):
        super().__init__(message, *args)
        self.message = message
