"""
简历处理流水线状态定义
贯穿整个 LangGraph 工作流，一次运行对应一条简历记录
"""

from typing import Optional, TypedDict

from resume_intake.models.payloads import (
    ConfidenceSummary,
    ParsedPayload,
    TranscriptionPayload,
)


class PipelineState(TypedDict, total=False):
    """
    流水线状态

    阶段产物在写入数据库的同时也放进状态，下一阶段直接读取，
    任一阶段失败时写入 error / failed_stage，路由函数据此转到 fail_node
    """

    # ---------- 输入 ----------
    resume_id: int
    owner_id: int
    modality: str
    file_reference: str
    original_name: str
    file_size: Optional[int]

    # 本次运行的临时目录，运行结束后由编排器删除
    scratch_dir: str

    # ---------- 阶段产物 ----------
    transcription: Optional[TranscriptionPayload]

    # 语音简历：分段后的转写文本所在的临时文件
    formatted_transcript_path: Optional[str]

    # 增强阶段使用的原始文本（语音为转写原文，文档为抽取出的文本）
    source_text: Optional[str]

    parsed: Optional[ParsedPayload]
    confidence: Optional[ConfidenceSummary]

    # ---------- 失败信息 ----------
    error: Optional[str]
    failed_stage: Optional[str]
