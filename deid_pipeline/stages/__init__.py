# deid_pipeline/stages/__init__.py

"""Pipeline stages: row shaping, batch packing and the deidentify call."""

from deid_pipeline.stages.shaper import RowShaper
from deid_pipeline.stages.packer import BatchPacker
from deid_pipeline.stages.caller import DeidentifyCaller

__all__ = ["RowShaper", "BatchPacker", "DeidentifyCaller"]
