"""
简历处理流水线编排器

负责：
1. 接收校验（记录归属、语音文件格式/大小/可读性），校验失败不产生任何状态流转
2. 为每次运行创建临时目录，运行结束后无论成败都会删除
3. 每条简历同一时刻最多一个处理任务；重复提交返回正在运行的任务
4. 失败重试：只允许从 failed 重新进入该形态的第一个 AI 阶段
"""

import asyncio
import logging
import tempfile
from typing import Dict, Optional, Tuple, Union

from resume_intake.ai.factory import AIServiceFactory
from resume_intake.db.init_db import get_engine
from resume_intake.errors import InvalidTransition, ResourceUnreadable, ValidationError
from resume_intake.models.resume import ProcessingStatus, ResumeModality, ResumeRecord
from resume_intake.repositories.resume_repository import ResumeRecordStore
from resume_intake.services.confidence_service import ConfidenceService
from resume_intake.services.enhancement_service import EnhancementService
from resume_intake.services.file_resolver import FileReferenceResolver, PlainTextExtractor, TextExtractor
from resume_intake.services.parsing_service import ParsingService
from resume_intake.services.status_service import ResumeStatusMachine
from resume_intake.services.transcription_service import TranscriptionService

from .graph import create_pipeline_graph
from .nodes import PipelineNodes
from .state import PipelineState

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    简历处理编排器

    使用示例：
        orchestrator = create_default_orchestrator()
        record, task = await orchestrator.submit_upload(
            owner_id=1,
            original_name="resume.mp3",
            storage_reference="/data/uploads/resume.mp3",
            file_size=1024,
            modality=ResumeModality.VOICE
        )
        final_record = await task
    """

    def __init__(
        self,
        store: ResumeRecordStore,
        transcription: TranscriptionService,
        parsing: ParsingService,
        enhancement: EnhancementService,
        confidence: Optional[ConfidenceService] = None,
        text_extractor: Optional[TextExtractor] = None,
        status_machine: Optional[ResumeStatusMachine] = None,
        resolver: Optional[FileReferenceResolver] = None
    ):
        self.store = store
        self.transcription = transcription
        self.resolver = resolver or transcription.resolver
        self.status_machine = status_machine or ResumeStatusMachine(store)

        self.nodes = PipelineNodes(
            store=store,
            status_machine=self.status_machine,
            transcription=transcription,
            parsing=parsing,
            enhancement=enhancement,
            confidence=confidence or ConfidenceService(),
            text_extractor=text_extractor or PlainTextExtractor(self.resolver)
        )
        self.graph = create_pipeline_graph(self.nodes)

        # resume_id -> 正在运行的任务
        self._tasks: Dict[int, asyncio.Task] = {}

    # =========================================================================
    # 接收校验
    # =========================================================================

    def validate_upload(
        self,
        storage_reference: str,
        modality: Union[ResumeModality, str],
        original_name: Optional[str] = None,
        file_size: Optional[int] = None
    ) -> None:
        """
        Raises:
            ValidationError: 语音文件格式/大小/可读性不符合要求，或文档不可读
        """
        if ResumeModality(modality) == ResumeModality.VOICE:
            self.transcription.validate(storage_reference, original_name, file_size)
        elif not self.resolver.is_readable(storage_reference):
            raise ResourceUnreadable(f"Document is not readable: {storage_reference}")

    # =========================================================================
    # 运行
    # =========================================================================

    async def process(
        self,
        resume_id: int,
        file_reference: str,
        owner_id: int,
        modality: Union[ResumeModality, str]
    ) -> ResumeRecord:
        """
        运行一次完整的流水线

        Returns:
            运行结束后的简历记录（completed 或 failed）

        Raises:
            NotFound: 简历不存在或不属于该用户
            ValidationError: 接收校验失败，记录状态不变
            InvalidTransition: 记录当前状态不允许开始处理
        """
        record = self.store.get_for_user(resume_id, owner_id)
        modality = ResumeModality(modality)
        if ResumeModality(record.modality) != modality:
            raise ValidationError(
                f"Resume {resume_id} was uploaded as {ResumeModality(record.modality).value}, "
                f"not {modality.value}"
            )
        self.validate_upload(file_reference, modality, record.original_name, record.file_size)

        logger.info("[Orchestrator] Processing resume %s (%s)", resume_id, modality.value)

        with tempfile.TemporaryDirectory(prefix=f"resume-{resume_id}-") as scratch_dir:
            initial_state: PipelineState = {
                "resume_id": resume_id,
                "owner_id": owner_id,
                "modality": modality.value,
                "file_reference": file_reference,
                "original_name": record.original_name,
                "file_size": record.file_size,
                "scratch_dir": scratch_dir,
            }
            final_state = await self.graph.ainvoke(initial_state)

        final_record = self.store.get(resume_id)
        if final_state.get("error"):
            logger.warning(
                "[Orchestrator] Resume %s failed at %s",
                resume_id, final_state.get("failed_stage")
            )
        else:
            logger.info("[Orchestrator] Resume %s finished with status %s", resume_id, final_record.processing_status)
        return final_record

    def start(
        self,
        resume_id: int,
        file_reference: str,
        owner_id: int,
        modality: Union[ResumeModality, str]
    ) -> asyncio.Task:
        """
        在后台启动处理任务（需要在运行中的事件循环里调用）

        同一条简历已有任务在运行时直接返回该任务
        """
        running = self._tasks.get(resume_id)
        if running is not None and not running.done():
            logger.info("[Orchestrator] Resume %s already in flight, reusing task", resume_id)
            return running

        task = asyncio.create_task(
            self.process(resume_id, file_reference, owner_id, modality),
            name=f"resume-pipeline-{resume_id}"
        )
        self._tasks[resume_id] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(resume_id) is finished:
                del self._tasks[resume_id]

        task.add_done_callback(_forget)
        return task

    def in_flight(self, resume_id: int) -> bool:
        task = self._tasks.get(resume_id)
        return task is not None and not task.done()

    async def retry(self, resume_id: int, owner_id: int) -> ResumeRecord:
        """
        重试失败的简历

        从该形态的第一个 AI 阶段重新开始，上一次的错误和阶段产物在重新进入时清空

        Raises:
            NotFound: 简历不存在或不属于该用户
            InvalidTransition: 简历当前不是 failed
        """
        running = self._tasks.get(resume_id)
        if running is not None and not running.done():
            await asyncio.wait({running})

        record = self.store.get_for_user(resume_id, owner_id)
        status = ProcessingStatus(record.processing_status)
        entry_state = self.status_machine.retry_entry_state(record.modality)
        if status != ProcessingStatus.FAILED:
            raise InvalidTransition(status.value, entry_state.value)

        logger.info("[Orchestrator] Retrying resume %s from %s", resume_id, entry_state.value)
        return await self.start(resume_id, record.storage_reference, owner_id, record.modality)

    async def submit_upload(
        self,
        owner_id: int,
        original_name: str,
        storage_reference: str,
        file_size: int,
        modality: Union[ResumeModality, str],
        content_type: Optional[str] = None
    ) -> Tuple[ResumeRecord, asyncio.Task]:
        """
        接收上传：校验 -> 创建 uploaded 记录 -> 启动后台处理

        Raises:
            NotFound: 用户不存在
            ValidationError: 用户已停用或文件校验失败，不创建记录
        """
        owner = self.store.get_owner(owner_id)
        if not owner.is_active:
            raise ValidationError(f"User {owner_id} is inactive and cannot submit resumes")

        self.validate_upload(storage_reference, modality, original_name, file_size)

        record = self.store.create(
            user_id=owner_id,
            original_name=original_name,
            storage_reference=storage_reference,
            file_size=file_size,
            modality=ResumeModality(modality),
            content_type=content_type
        )
        logger.info("[Orchestrator] Resume %s uploaded: %s", record.id, original_name)

        task = self.start(record.id, storage_reference, owner_id, modality)
        return record, task

    def get_status(self, resume_id: int, owner_id: int) -> Dict:
        """轮询接口：当前状态、进度和历史"""
        record = self.store.get_for_user(resume_id, owner_id)
        return self.status_machine.describe(record)


def create_default_orchestrator(engine=None, factory: Optional[AIServiceFactory] = None) -> PipelineOrchestrator:
    """
    按 ai_config.json 和数据库配置组装编排器

    Args:
        engine: SQLAlchemy 引擎，默认 get_engine()
        factory: AI 服务工厂，默认读取 backend/ai_config.json
    """
    if engine is None:
        engine = get_engine()

    factory = factory or AIServiceFactory()
    settings = factory.get_pipeline_settings()
    hf_client = factory.create_huggingface_client()
    resolver = FileReferenceResolver()

    store = ResumeRecordStore(engine)
    return PipelineOrchestrator(
        store=store,
        transcription=TranscriptionService(
            factory.create_speech_to_text_client(hf_client),
            resolver=resolver,
            max_audio_bytes=settings.max_audio_bytes,
            section_window_words=settings.section_window_words
        ),
        parsing=ParsingService(
            hf_client,
            inter_call_delay_seconds=settings.inter_call_delay_seconds,
            min_score=settings.qa_min_score
        ),
        enhancement=EnhancementService(hf_client, inter_call_delay_seconds=settings.inter_call_delay_seconds),
        confidence=ConfidenceService(),
        text_extractor=PlainTextExtractor(resolver),
        status_machine=ResumeStatusMachine(store),
        resolver=resolver
    )
