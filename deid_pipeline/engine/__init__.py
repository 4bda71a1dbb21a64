# deid_pipeline/engine/__init__.py

"""Engine package providing deidentification service clients.

This package contains the client interface, the in-process Presidio
backed service and the HTTP client for a remote service.
"""
