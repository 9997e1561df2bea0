"""Exception hierarchy."""


class FusionOracleError(Exception):
    """Base class for all fusion_oracle errors."""


class PriceUnavailable(FusionOracleError):
    """Price data could not be obtained."""


class MissingOpinion(FusionOracleError):
    """An analyzer timed out or failed to produce an opinion."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class InvalidTransition(FusionOracleError):
    """Illegal state change of a pending prediction."""


class ConfigError(FusionOracleError):
    """Configuration could not be loaded or validated."""
