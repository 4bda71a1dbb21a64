# deid_pipeline/core/__init__.py

"""Core domain models and utilities used across the deidentification pipeline.

This package provides domain types, policy models, exceptions, and the
template loader shared by the stages, clients and service layer.
"""
