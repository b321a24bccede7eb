"""
简历处理流水线节点

节点列表：
1. transcribe_node: 语音转写 + 质量评估 + 分段（仅语音简历）
2. parse_node: 问答式字段抽取（语音读取分段后的转写，文档通过 TextExtractor 读取）
3. enhance_node: AI 增强，失败时降级为基础解析结果，不中断流水线
4. score_node: 置信度评分，进入 completed
5. fail_node: 写入 ErrorPayload，进入 failed

每个阶段边界只调用一次 store.update：阶段产物和状态变更一起提交。
阶段内的异常写入 state.error / state.failed_stage，由路由函数转到 fail_node；
InvalidTransition 属于程序错误，直接向上抛出。
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from resume_intake.errors import ExternalServiceError, InvalidTransition
from resume_intake.models.payloads import (
    DocumentSourceMetadata,
    ErrorPayload,
    ParsedPayload,
    TranscriptionPayload,
    VoiceSourceMetadata,
)
from resume_intake.models.resume import ProcessingStatus, ResumeModality, ResumeRecord
from resume_intake.repositories.resume_repository import ResumeRecordStore
from resume_intake.services.confidence_service import ConfidenceService
from resume_intake.services.enhancement_service import EnhancementService
from resume_intake.services.file_resolver import TextExtractor, is_url
from resume_intake.services.parsing_service import ParsingService
from resume_intake.services.status_service import ResumeStatusMachine
from resume_intake.services.transcription_service import TranscriptionService

from .state import PipelineState

logger = logging.getLogger(__name__)

FORMATTED_TRANSCRIPT_FILENAME = "formatted_transcript.txt"

# 重试时清空上一次运行留下的阶段产物
_RETRY_CLEARED_FIELDS = {
    "transcription_data": None,
    "parsed_data": None,
    "source_metadata": None,
    "confidence_scores": None,
    "error_payload": None,
}


# =============================================================================
# 辅助函数
# =============================================================================

def error_message(error: Exception) -> str:
    if isinstance(error, ExternalServiceError):
        return error.message
    return str(error) or error.__class__.__name__


def storage_type(reference: str) -> str:
    return "url" if is_url(reference) else "local"


class PipelineNodes:
    """
    流水线节点集合

    所有依赖通过构造函数注入，节点方法直接作为 StateGraph 的节点注册
    """

    def __init__(
        self,
        store: ResumeRecordStore,
        status_machine: ResumeStatusMachine,
        transcription: TranscriptionService,
        parsing: ParsingService,
        enhancement: EnhancementService,
        confidence: ConfidenceService,
        text_extractor: TextExtractor
    ):
        self.store = store
        self.status_machine = status_machine
        self.transcription = transcription
        self.parsing = parsing
        self.enhancement = enhancement
        self.confidence = confidence
        self.text_extractor = text_extractor

    # =========================================================================
    # 内部工具
    # =========================================================================

    def _begin_stage(
        self,
        record: ResumeRecord,
        target: ProcessingStatus,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ResumeRecord:
        """进入阶段的进行中状态；从 failed 重新进入时一并清空上次的产物"""
        retrying = ProcessingStatus(record.processing_status) == ProcessingStatus.FAILED
        changes = self.status_machine.transition(record, target, metadata)
        if retrying:
            changes.update(_RETRY_CLEARED_FIELDS)
            logger.info("[Pipeline] Resume %s retrying from %s", record.id, target.value)
        return self.store.update(record.id, **changes)

    def _stage_failed(self, state: PipelineState, stage: ProcessingStatus, error: Exception) -> PipelineState:
        logger.error(
            "[Pipeline] Resume %s failed at %s: %s",
            state["resume_id"], stage.value, error_message(error),
            exc_info=error
        )
        return {"error": error_message(error), "failed_stage": stage.value}

    # =========================================================================
    # 节点
    # =========================================================================

    async def transcribe_node(self, state: PipelineState) -> PipelineState:
        """
        转写节点：uploaded/failed -> transcribing -> transcribed

        分段后的转写写入临时目录，parse_node 从该文件读取
        """
        resume_id = state["resume_id"]
        stage = ProcessingStatus.TRANSCRIBING
        record = self.store.get(resume_id)

        try:
            record = self._begin_stage(record, stage, {"stage": stage.value})
            transcription = await self.transcription.transcribe(
                state["file_reference"],
                state.get("original_name"),
                state.get("file_size")
            )
            formatted = self.transcription.format_for_parsing(
                transcription.text,
                {"word_count": transcription.word_count}
            )

            transcript_path = Path(state["scratch_dir"]) / FORMATTED_TRANSCRIPT_FILENAME
            transcript_path.write_text(formatted.formatted_text, encoding="utf-8")

            source_metadata = VoiceSourceMetadata(
                storage_type=storage_type(state["file_reference"]),
                transcription_method=self.transcription.transcription_method,
                detected_sections=list(formatted.detected_sections)
            )
            changes = self.status_machine.transition(record, ProcessingStatus.TRANSCRIBED, {
                "word_count": transcription.word_count,
                "transcription_quality": transcription.quality.score,
                "detected_sections": list(formatted.detected_sections),
            })
            self.store.update(
                resume_id,
                transcription_data=transcription,
                source_metadata=source_metadata,
                **changes
            )
        except InvalidTransition:
            raise
        except Exception as e:
            return self._stage_failed(state, stage, e)

        return {
            "transcription": transcription,
            "formatted_transcript_path": str(transcript_path),
            "source_text": transcription.text,
        }

    async def parse_node(self, state: PipelineState) -> PipelineState:
        """解析节点：transcribed/uploaded/failed -> parsing -> parsed"""
        resume_id = state["resume_id"]
        stage = ProcessingStatus.PARSING
        record = self.store.get(resume_id)

        try:
            record = self._begin_stage(record, stage, {"stage": stage.value})
            voice = ResumeModality(state["modality"]) == ResumeModality.VOICE
            extra: Dict[str, Any] = {}

            if voice:
                text = Path(state["formatted_transcript_path"]).read_text(encoding="utf-8")
                source_text = state.get("source_text") or text
            else:
                text = await self.text_extractor.extract(state["file_reference"])
                source_text = text
                extra["source_metadata"] = DocumentSourceMetadata(
                    storage_type=storage_type(state["file_reference"]),
                    text_length=len(text)
                )

            parsed = await self.parsing.parse(text)

            changes = self.status_machine.transition(record, ProcessingStatus.PARSED, {
                "extraction_confidence": parsed.extraction_confidence,
                "skills_found": len(parsed.skills or []),
            })
            self.store.update(resume_id, parsed_data=parsed, **extra, **changes)
        except InvalidTransition:
            raise
        except Exception as e:
            return self._stage_failed(state, stage, e)

        return {"parsed": parsed, "source_text": source_text}

    async def enhance_node(self, state: PipelineState) -> PipelineState:
        """
        增强节点：parsed -> enhancing -> enhanced

        增强适配器抛错时降级：保留基础解析，enhanced=False，仍然进入 enhanced
        """
        resume_id = state["resume_id"]
        stage = ProcessingStatus.ENHANCING
        parsed: ParsedPayload = state["parsed"]
        record = self.store.get(resume_id)

        try:
            record = self._begin_stage(record, stage, {"stage": stage.value})
            try:
                enhanced = await self.enhancement.enhance(parsed, state.get("source_text") or "")
            except Exception as e:
                logger.warning("[Pipeline] Resume %s enhancement degraded: %s", resume_id, error_message(e))
                enhanced = self.enhancement.degrade(parsed, e)

            metadata: Dict[str, Any] = {"enhanced": bool(enhanced.enhanced)}
            if enhanced.ai_enhancement is not None:
                metadata["experience_level"] = enhanced.ai_enhancement.experience_level

            changes = self.status_machine.transition(record, ProcessingStatus.ENHANCED, metadata)
            self.store.update(resume_id, parsed_data=enhanced, **changes)
        except InvalidTransition:
            raise
        except Exception as e:
            return self._stage_failed(state, stage, e)

        return {"parsed": enhanced}

    async def score_node(self, state: PipelineState) -> PipelineState:
        """评分节点：enhanced -> completed"""
        resume_id = state["resume_id"]
        record = self.store.get(resume_id)
        transcription: Optional[TranscriptionPayload] = state.get("transcription")

        try:
            summary = self.confidence.calculate(state["parsed"], transcription)
            changes = self.status_machine.transition(record, ProcessingStatus.COMPLETED, {
                "overall_confidence": summary.overall_score,
                "confidence_level": summary.level,
            })
            self.store.update(resume_id, confidence_scores=summary, **changes)
        except InvalidTransition:
            raise
        except Exception as e:
            return self._stage_failed(state, ProcessingStatus(record.processing_status), e)

        logger.info("[Pipeline] Resume %s completed (confidence=%s)", resume_id, summary.overall_score)
        return {"confidence": summary}

    async def fail_node(self, state: PipelineState) -> PipelineState:
        """失败节点：记录当前状态 -> failed，写入 ErrorPayload"""
        resume_id = state["resume_id"]
        message = state.get("error") or "Unknown error"
        record = self.store.get(resume_id)
        failed_stage = state.get("failed_stage") or ProcessingStatus(record.processing_status).value

        error_payload = ErrorPayload(message=message, failed_at_stage=failed_stage, can_retry=True)
        changes = self.status_machine.transition(record, ProcessingStatus.FAILED, {
            "error": message,
            "failed_at_stage": failed_stage,
        })
        self.store.update(resume_id, error_payload=error_payload, **changes)
        return {}


# =============================================================================
# 路由函数
# =============================================================================

def route_entry(state: PipelineState) -> str:
    """按来源形态选择第一个 AI 阶段"""
    if ResumeModality(state["modality"]) == ResumeModality.VOICE:
        return "transcribe_node"
    return "parse_node"


def route_after_transcribe(state: PipelineState) -> str:
    return "fail_node" if state.get("error") else "parse_node"


def route_after_parse(state: PipelineState) -> str:
    return "fail_node" if state.get("error") else "enhance_node"


def route_after_enhance(state: PipelineState) -> str:
    return "fail_node" if state.get("error") else "score_node"


def route_after_score(state: PipelineState) -> str:
    return "fail_node" if state.get("error") else "__end__"
