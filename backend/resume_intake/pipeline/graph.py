"""
简历处理流水线图

架构：
graph TD
    START -->|voice| transcribe_node
    START -->|document| parse_node
    transcribe_node -->|ok| parse_node
    transcribe_node -->|error| fail_node
    parse_node -->|ok| enhance_node
    parse_node -->|error| fail_node
    enhance_node -->|ok| score_node
    enhance_node -->|error| fail_node
    score_node -->|ok| END
    score_node -->|error| fail_node
    fail_node --> END

任一阶段报告错误后直接进入 fail_node，后续阶段不再执行。
"""

from langgraph.graph import END, START, StateGraph

from .nodes import (
    PipelineNodes,
    route_after_enhance,
    route_after_parse,
    route_after_score,
    route_after_transcribe,
    route_entry,
)
from .state import PipelineState


def create_pipeline_graph(nodes: PipelineNodes):
    """
    创建简历处理流水线图

    Args:
        nodes: 注入了存储与各阶段服务的节点集合

    Returns:
        编译后的 StateGraph
    """
    workflow = StateGraph(PipelineState)

    # 添加节点
    workflow.add_node("transcribe_node", nodes.transcribe_node)
    workflow.add_node("parse_node", nodes.parse_node)
    workflow.add_node("enhance_node", nodes.enhance_node)
    workflow.add_node("score_node", nodes.score_node)
    workflow.add_node("fail_node", nodes.fail_node)

    # 入口：按来源形态路由
    workflow.add_conditional_edges(
        START,
        route_entry,
        {
            "transcribe_node": "transcribe_node",
            "parse_node": "parse_node",
        }
    )

    workflow.add_conditional_edges(
        "transcribe_node",
        route_after_transcribe,
        {
            "parse_node": "parse_node",
            "fail_node": "fail_node",
        }
    )

    workflow.add_conditional_edges(
        "parse_node",
        route_after_parse,
        {
            "enhance_node": "enhance_node",
            "fail_node": "fail_node",
        }
    )

    workflow.add_conditional_edges(
        "enhance_node",
        route_after_enhance,
        {
            "score_node": "score_node",
            "fail_node": "fail_node",
        }
    )

    workflow.add_conditional_edges(
        "score_node",
        route_after_score,
        {
            "fail_node": "fail_node",
            "__end__": END,
        }
    )

    workflow.add_edge("fail_node", END)

    return workflow.compile()
