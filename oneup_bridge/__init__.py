"""1up Health → FHIR store integration daemon."""

__version__ = "0.1.0"
