"""Project-manager agent tools for the HAL ticket tracker."""

__version__ = "0.4.0"

__all__ = ["__version__"]
