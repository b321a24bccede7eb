"""
简历处理状态机

状态流转（按来源形态区分入口）：
    语音: uploaded -> transcribing -> transcribed -> parsing -> parsed
          -> enhancing -> enhanced -> completed
    文档: uploaded -> parsing -> parsed -> enhancing -> enhanced -> completed

任何未结束的状态都可以进入 failed；failed 只能重新进入该形态的第一个 AI 阶段
（语音为 transcribing，文档为 parsing）。同状态流转一律视为非法。

状态机本身不访问数据库：transition() 修改内存中的记录并返回变更字段，
由调用方连同阶段产物一次性写入 ResumeRecordStore。
"""

import logging
from typing import Any, Dict, FrozenSet, List, Optional, Union

from resume_intake.errors import InvalidTransition
from resume_intake.models.base import as_utc, utc_now
from resume_intake.models.payloads import StatusHistoryEntry
from resume_intake.models.resume import ProcessingStatus, ResumeModality, ResumeRecord

logger = logging.getLogger(__name__)

S = ProcessingStatus

# 两种形态共用的后半段
_SHARED_TRANSITIONS: Dict[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    S.PARSING: frozenset({S.PARSED, S.FAILED}),
    S.PARSED: frozenset({S.ENHANCING, S.FAILED}),
    S.ENHANCING: frozenset({S.ENHANCED, S.FAILED}),
    S.ENHANCED: frozenset({S.COMPLETED, S.FAILED}),
    S.COMPLETED: frozenset(),
}

VALID_TRANSITIONS: Dict[ResumeModality, Dict[ProcessingStatus, FrozenSet[ProcessingStatus]]] = {
    ResumeModality.VOICE: {
        S.UPLOADED: frozenset({S.TRANSCRIBING, S.FAILED}),
        S.TRANSCRIBING: frozenset({S.TRANSCRIBED, S.FAILED}),
        S.TRANSCRIBED: frozenset({S.PARSING, S.FAILED}),
        **_SHARED_TRANSITIONS,
        S.FAILED: frozenset({S.TRANSCRIBING}),
    },
    ResumeModality.DOCUMENT: {
        S.UPLOADED: frozenset({S.PARSING, S.FAILED}),
        S.TRANSCRIBING: frozenset(),
        S.TRANSCRIBED: frozenset(),
        **_SHARED_TRANSITIONS,
        S.FAILED: frozenset({S.PARSING}),
    },
}

PROGRESS_PERCENT: Dict[ProcessingStatus, int] = {
    S.UPLOADED: 10,
    S.TRANSCRIBING: 25,
    S.TRANSCRIBED: 40,
    S.PARSING: 55,
    S.PARSED: 70,
    S.ENHANCING: 85,
    S.ENHANCED: 95,
    S.COMPLETED: 100,
    S.FAILED: 0,
}

STATUS_MESSAGES: Dict[ProcessingStatus, str] = {
    S.UPLOADED: "Your resume has been received and is queued for processing",
    S.TRANSCRIBING: "Converting your audio to text using AI speech recognition",
    S.TRANSCRIBED: "Audio successfully converted to text",
    S.PARSING: "Extracting information from your resume text",
    S.PARSED: "Resume information successfully extracted",
    S.ENHANCING: "Analyzing your resume with AI for additional insights",
    S.ENHANCED: "AI analysis complete",
    S.COMPLETED: "Your resume has been fully processed and is ready",
    S.FAILED: "An error occurred during processing",
}

TERMINAL_STATES = frozenset({S.COMPLETED, S.FAILED})

# 进入这些状态时记录对应的阶段时间戳
_STAGE_TIMESTAMP_FIELDS = {
    S.TRANSCRIBED: "transcribed_at",
    S.PARSED: "parsed_at",
}


def format_duration(milliseconds: Union[int, float]) -> str:
    """毫秒 -> "1h 5m" / "2m 3s" / "4s" """
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def progress_percent(status: Union[ProcessingStatus, str]) -> int:
    """状态 -> 进度百分比，仅用于展示"""
    return PROGRESS_PERCENT.get(ProcessingStatus(status), 0)


def status_message(status: Union[ProcessingStatus, str]) -> str:
    return STATUS_MESSAGES[ProcessingStatus(status)]


class ResumeStatusMachine:
    """
    简历状态机

    使用示例：
        machine = ResumeStatusMachine()
        changes = machine.transition(record, ProcessingStatus.PARSING, {"stage": "parsing"})
        store.update(record.id, parsed_data=payload, **changes)
    """

    def __init__(self, store=None):
        """
        Args:
            store: ResumeRecordStore，仅 get_user_stats 需要
        """
        self.store = store

    # ==================== 流转规则 ====================

    @staticmethod
    def allowed_next(
        status: Union[ProcessingStatus, str],
        modality: Union[ResumeModality, str]
    ) -> FrozenSet[ProcessingStatus]:
        return VALID_TRANSITIONS[ResumeModality(modality)].get(ProcessingStatus(status), frozenset())

    def is_valid_transition(
        self,
        from_status: Union[ProcessingStatus, str],
        to_status: Union[ProcessingStatus, str],
        modality: Union[ResumeModality, str]
    ) -> bool:
        return ProcessingStatus(to_status) in self.allowed_next(from_status, modality)

    @staticmethod
    def retry_entry_state(modality: Union[ResumeModality, str]) -> ProcessingStatus:
        """失败后重试的入口状态"""
        if ResumeModality(modality) == ResumeModality.VOICE:
            return S.TRANSCRIBING
        return S.PARSING

    # ==================== 状态流转 ====================

    def transition(
        self,
        record: ResumeRecord,
        target_state: Union[ProcessingStatus, str],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        执行一次状态流转

        Args:
            record: 简历记录（会被原地修改）
            target_state: 目标状态
            metadata: 本次流转附带的元数据

        Returns:
            变更的字段字典，可直接作为 ResumeRecordStore.update 的关键字参数

        Raises:
            InvalidTransition: 目标状态不在允许集合内，记录保持不变
        """
        current = ProcessingStatus(record.processing_status)
        target = ProcessingStatus(target_state)

        if not self.is_valid_transition(current, target, record.modality):
            raise InvalidTransition(current.value, target.value)

        now = utc_now()
        entry_metadata = dict(metadata or {})
        changes: Dict[str, Any] = {}

        # 离开 uploaded 或 failed 时开始（重新）计时
        if current in (S.UPLOADED, S.FAILED):
            changes["processing_started_at"] = now
            if current == S.FAILED:
                changes["processing_completed_at"] = None
                changes["total_processing_ms"] = None

        if target in TERMINAL_STATES:
            started_at = as_utc(changes.get("processing_started_at") or record.processing_started_at)
            if started_at is not None:
                total_ms = max(0, int((now - started_at).total_seconds() * 1000))
                entry_metadata["total_processing_ms"] = total_ms
                entry_metadata["processing_time_formatted"] = format_duration(total_ms)
                changes["total_processing_ms"] = total_ms
            changes["processing_completed_at"] = now

        stage_field = _STAGE_TIMESTAMP_FIELDS.get(target)
        if stage_field:
            changes[stage_field] = now

        entry = StatusHistoryEntry(
            from_status=current.value,
            to_status=target.value,
            timestamp=now,
            metadata=entry_metadata
        ).model_dump(mode="json")

        # JSON 列必须整体重新赋值，SQLAlchemy 才能感知变更
        changes["status_history"] = [*(record.status_history or []), entry]
        # 从 failed 重新进入时丢弃上一次运行的元数据，历史记录仍完整保留
        previous_metadata = {} if current == S.FAILED else (record.processing_metadata or {})
        changes["processing_metadata"] = {**previous_metadata, **entry["metadata"]}
        changes["processing_status"] = target
        changes["last_status_update"] = now

        for field, value in changes.items():
            setattr(record, field, value)

        logger.info("[StatusMachine] Resume %s status updated: %s -> %s", record.id, current.value, target.value)
        return changes

    # ==================== 状态查询 ====================

    def describe(self, record: ResumeRecord) -> Dict[str, Any]:
        """
        轮询接口使用的状态视图

        Returns:
            包含当前状态、进度、历史、耗时、是否可重试等信息的字典
        """
        status = ProcessingStatus(record.processing_status)
        now = utc_now()

        last_update = as_utc(record.last_status_update) or as_utc(record.uploaded_at)
        time_in_current = format_duration((now - last_update).total_seconds() * 1000) if last_update else None

        total_processing_time = None
        if record.total_processing_ms is not None:
            total_processing_time = format_duration(record.total_processing_ms)

        return {
            "resume_id": record.id,
            "file_name": record.original_name,
            "modality": ResumeModality(record.modality).value,
            "current_status": status.value,
            "message": STATUS_MESSAGES[status],
            "progress": PROGRESS_PERCENT[status],
            "status_history": list(record.status_history or []),
            "metadata": dict(record.processing_metadata or {}),
            "confidence_scores": record.confidence_scores or {},
            "time_in_current_status": time_in_current,
            "total_processing_time": total_processing_time,
            "is_complete": status in TERMINAL_STATES,
            "can_retry": status == S.FAILED,
            "error": record.error_payload,
        }

    def get_user_stats(self, user_id: int, modality: Optional[ResumeModality] = None) -> Dict[str, Any]:
        """
        用户的处理统计

        Returns:
            {total_resumes, completed_resumes, failed_resumes, processing_resumes,
             average_processing_time, success_rate}
        """
        if self.store is None:
            raise RuntimeError("ResumeStatusMachine.get_user_stats requires a record store")

        records: List[ResumeRecord] = self.store.list_by_user(user_id, modality=modality)
        statuses = [ProcessingStatus(r.processing_status) for r in records]

        total = len(records)
        completed = statuses.count(S.COMPLETED)
        failed = statuses.count(S.FAILED)

        durations = [
            r.total_processing_ms for r in records
            if r.processing_completed_at is not None and r.total_processing_ms is not None
        ]
        average = format_duration(sum(durations) / len(durations)) if durations else None

        return {
            "total_resumes": total,
            "completed_resumes": completed,
            "failed_resumes": failed,
            "processing_resumes": total - completed - failed,
            "average_processing_time": average,
            "success_rate": round(completed / total * 100) if total else 0,
        }
