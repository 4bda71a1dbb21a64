# deid_pipeline/service/__init__.py

"""Service layer: settings, pipeline composition and document sources."""
