"""
简历处理流水线
LangGraph 状态图 + 编排器
"""

from .state import PipelineState
from .nodes import PipelineNodes
from .graph import create_pipeline_graph
from .orchestrator import PipelineOrchestrator, create_default_orchestrator

__all__ = [
    "PipelineState",
    "PipelineNodes",
    "create_pipeline_graph",
    "PipelineOrchestrator",
    "create_default_orchestrator",
]
