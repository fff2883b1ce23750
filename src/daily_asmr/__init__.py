"""
Daily age-standardized mortality with calendar-anchored expected baselines.

This package converts weekly death counts and quarterly population estimates
into dense daily series, standardizes them against a fixed reference
population, and fits a season-matched linear trend for every output day so
that excess mortality can be read off exact dates.
"""

__version__ = "0.1.0"
