"""
Utility functions for the daily age-standardized mortality pipeline.

This package contains configuration handling, data validation, the failure
report and plotting helpers.
"""
