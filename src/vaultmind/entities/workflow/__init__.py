"""
Agent workflow: dependency container and the ``process_query`` entry point.
"""

from .clients import PipelineClients, create_pipeline_clients
from .pipeline import process_query

__all__ = ["PipelineClients", "create_pipeline_clients", "process_query"]
