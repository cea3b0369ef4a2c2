"""Custom warning classes for the risk register package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Suppress configuration warnings in a quick exploratory run::

        import warnings
        from risk_register._warnings import ConfigurationWarning

        warnings.filterwarnings("ignore", category=ConfigurationWarning)

    Capture data-quality warnings during simulation::

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always", DataQualityWarning)
            # ... simulate a tree ...
            clipped = [x for x in w if issubclass(x.category, DataQualityWarning)]
"""


class RiskRegisterWarning(UserWarning):
    """Base class for all risk-register warnings."""


class ConfigurationWarning(RiskRegisterWarning):
    """Unusual or potentially incorrect configuration parameters.

    Raised during config validation when parameter values are legal but
    unlikely to produce a useful result (e.g., a trial count so low that
    the tail of a loss-exceedance curve is pure noise).
    """


class DataQualityWarning(RiskRegisterWarning):
    """Runtime data-quality observations.

    Raised when a simulation encounters numeric anomalies such as sampled
    losses beyond the representable range that had to be clipped.
    """
