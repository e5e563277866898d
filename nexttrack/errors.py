"""
Error taxonomy for the party API

Each error carries the HTTP status the API answers with.
"""


class PartyError(Exception):
    """Base class for errors surfaced to API clients"""
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PartyError):
    """Bad or missing vote / session id"""
    status = 400


class StateNotFoundError(PartyError):
    """Operation needs a playing track and the party has none"""
    status = 404


class StoreError(PartyError):
    """Vote store query or write failed"""
    status = 500


class CatalogError(PartyError):
    """Track catalog is unusable (e.g. empty)"""
    status = 500
