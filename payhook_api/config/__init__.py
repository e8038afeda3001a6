"""Configuration helpers."""

from payhook_api.config.settings import PipelineSettings, load_pipeline_settings

__all__ = ["PipelineSettings", "load_pipeline_settings"]
