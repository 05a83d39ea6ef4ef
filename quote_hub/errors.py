class QuoteHubError(Exception):
    """Base class for quote hub domain errors."""


class UpstreamUnavailable(QuoteHubError):
    """Quote source unreachable, non-2xx, or returned an unusable body."""


class NoMatchingRecord(UpstreamUnavailable):
    def __init__(self, symbol_id: str) -> None:
        super().__init__(f"no quote record for {symbol_id}")
        self.symbol_id = symbol_id


class InsufficientData(QuoteHubError):
    pass


class SubscriberSendFailure(QuoteHubError):
    pass


class TransportUpgradeFailure(QuoteHubError):
    pass
