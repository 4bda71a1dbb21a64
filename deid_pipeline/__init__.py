# deid_pipeline/__init__.py

"""Batching pipeline that prepares text and CSV records for deidentification.

Records are shaped into table rows, packed into size-bounded batches per
source key and sent to a deidentification service one request per batch.
"""

__version__ = "0.1.0"
