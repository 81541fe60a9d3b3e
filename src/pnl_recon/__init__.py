# Pricing resolution and budget-vs-actual reconciliation for the reporting dashboard

__version__ = "0.4.0"
