"""rate-sentinel: cryptocurrency exchange-rate tracker."""

__version__ = "0.1.0"
