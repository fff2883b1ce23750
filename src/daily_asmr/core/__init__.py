"""
Core functionality for the daily age-standardized mortality pipeline.

This package contains the pure stages of the computation: temporal
interpolation, rate composition, aggregation and the seasonal regression
engine, plus the pipeline that chains them.
"""
