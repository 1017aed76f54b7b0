"""vidingest: stage uploaded videos as media-services assets and submit encoding jobs."""

from .pipeline import PipelineDriver, PipelineEvent, ServiceContext

__all__ = ["PipelineDriver", "PipelineEvent", "ServiceContext"]
