"""TaxPilot: guided tax intake, tax-professional routing and appointment booking."""

__version__ = "0.1.0"
