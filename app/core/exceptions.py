class SafetyCoreError(Exception):
    """Base class for errors raised by the safety core"""


class InvalidGeometry(SafetyCoreError, ValueError):
    """Out-of-range coordinates or an unusable zone boundary"""


class UnknownTourist(SafetyCoreError, KeyError):
    """No state registered for the requested tourist id"""

    def __init__(self, tourist_id: str):
        super().__init__(tourist_id)
        self.tourist_id = tourist_id

    def __str__(self) -> str:
        return f"Unknown tourist: {self.tourist_id}"


class ModelUnavailable(SafetyCoreError):
    """The distress scoring model is not loaded"""
