class TargetPriceError(ValueError):
    """Distance or rate cannot produce a target price"""


class LanguageServiceError(Exception):
    """The language service call failed or returned something unusable"""


class NegotiationStoreError(Exception):
    """The negotiation store rejected a request or returned no data"""
