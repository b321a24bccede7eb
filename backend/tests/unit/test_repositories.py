"""
Repository 单元测试
验证 UserRepository、ResumeRepository、ResumeRecordStore 和 JobComparisonRepository 的 CRUD 操作
"""

import pytest

from resume_intake.errors import NotFound
from resume_intake.models.payloads import (
    ComparisonResult,
    EducationAnalysis,
    ErrorPayload,
    ExperienceAnalysis,
    JobRequirements,
    ParsedPayload,
    SkillsAnalysis,
)
from resume_intake.models.resume import ProcessingStatus, ResumeModality
from resume_intake.repositories import UserRepository
from resume_intake.repositories.resume_repository import serialize_field


def _create(repository, user, modality=ResumeModality.DOCUMENT, name="resume.pdf"):
    return repository.create(
        user_id=user.id,
        original_name=name,
        storage_reference=f"/tmp/{name}",
        file_size=2048,
        modality=modality
    )


def _comparison_result(score: int) -> ComparisonResult:
    return ComparisonResult(
        overall_score=score,
        match_quality="Good Match",
        interpretation="Solid overlap",
        skills=SkillsAnalysis(match_score=score),
        experience=ExperienceAnalysis(match_score=score),
        education=EducationAnalysis(),
        semantic_similarity=50,
        job_requirements=JobRequirements(required_skills=["Python"])
    )


class TestUserRepository:
    """测试 UserRepository"""

    def test_create_user(self, test_db_session):
        """测试注册新用户"""
        repository = UserRepository(test_db_session)

        user = repository.create("alice", email="alice@example.com", full_name="Alice Chen")

        assert user.id is not None
        assert user.is_active is True
        assert user.basic_info == {}
        assert repository.get_by_id(user.id).email == "alice@example.com"

    def test_get_by_id_missing(self, test_db_session):
        assert UserRepository(test_db_session).get_by_id(9999) is None

    def test_set_active(self, test_db_session, test_user):
        """测试停用用户"""
        repository = UserRepository(test_db_session)

        assert repository.set_active(test_user.id, False).is_active is False
        assert repository.set_active(9999, False) is None


class TestResumeRepository:
    """测试 ResumeRepository"""

    def test_create_resume(self, resume_repository, test_user):
        """测试创建简历记录的初始状态"""
        record = _create(resume_repository, test_user, ResumeModality.VOICE, "resume.mp3")

        assert record.id is not None
        assert record.processing_status == ProcessingStatus.UPLOADED
        assert record.modality == ResumeModality.VOICE
        assert record.status_history == []
        assert record.processing_metadata == {}
        assert record.uploaded_at is not None
        assert record.transcription_data is None
        assert record.error_payload is None

    def test_get_for_user_checks_owner(self, resume_repository, test_user, other_user):
        """测试只能读取自己的简历"""
        record = _create(resume_repository, test_user)

        assert resume_repository.get_for_user(record.id, test_user.id).id == record.id
        assert resume_repository.get_for_user(record.id, other_user.id) is None

    def test_get_all_by_user_with_filters(self, resume_repository, test_user, other_user):
        """测试按用户和形态过滤"""
        document = _create(resume_repository, test_user)
        voice = _create(resume_repository, test_user, ResumeModality.VOICE, "resume.mp3")
        _create(resume_repository, other_user)

        all_records = resume_repository.get_all_by_user(test_user.id)
        voice_records = resume_repository.get_all_by_user(test_user.id, modality=ResumeModality.VOICE)

        assert {r.id for r in all_records} == {document.id, voice.id}
        assert [r.id for r in voice_records] == [voice.id]
        assert len(resume_repository.get_all_by_user(test_user.id, limit=1)) == 1

    def test_update_fields_serializes_payloads(self, resume_repository, test_user):
        """测试载荷模型以纯 JSON 结构入库"""
        record = _create(resume_repository, test_user)

        updated = resume_repository.update_fields(record.id, {
            "parsed_data": ParsedPayload(name="John Smith", skills=["Python"]),
            "error_payload": {"message": "boom", "failed_at_stage": "parsing"},
        })

        assert updated.parsed_data["name"] == "John Smith"
        assert isinstance(updated.parsed_data["extracted_at"], str)
        assert updated.error_payload["can_retry"] is True
        assert updated.get_parsed_payload().skills == ["Python"]
        assert isinstance(updated.get_error_payload(), ErrorPayload)

    def test_update_fields_missing_record(self, resume_repository):
        with pytest.raises(NotFound):
            resume_repository.update_fields(9999, {"processing_status": "parsing"})

    def test_update_fields_rejects_invalid_payload_atomically(self, resume_repository, test_user):
        """测试校验失败时不留下半更新"""
        record = _create(resume_repository, test_user)

        with pytest.raises(ValueError):
            resume_repository.update_fields(record.id, {
                "processing_status": ProcessingStatus.PARSING,
                "parsed_data": '{"name": "John"}',
            })

        assert resume_repository.get_by_id(record.id).processing_status == ProcessingStatus.UPLOADED


class TestSerializeField:
    """测试字段序列化规则"""

    def test_identity_fields_not_updatable(self):
        with pytest.raises(ValueError) as exc_info:
            serialize_field("storage_reference", "/tmp/other.pdf")
        assert "cannot be updated" in str(exc_info.value)

    def test_string_payload_rejected(self):
        with pytest.raises(ValueError) as exc_info:
            serialize_field("confidence_scores", '{"overall_score": 80}')
        assert "string" in str(exc_info.value)

    def test_none_clears_payload(self):
        assert serialize_field("transcription_data", None) is None

    def test_status_coerced(self):
        assert serialize_field("processing_status", "enhancing") is ProcessingStatus.ENHANCING

    def test_source_metadata_discriminated(self):
        value = serialize_field("source_metadata", {"modality": "document", "text_length": 120})
        assert value == {"modality": "document", "storage_type": "local", "text_length": 120}

    def test_plain_fields_passthrough(self):
        assert serialize_field("total_processing_ms", 1500) == 1500


class TestResumeRecordStore:
    """测试流水线使用的记录存储"""

    def test_create_and_get(self, record_store, test_user):
        record = record_store.create(
            user_id=test_user.id,
            original_name="resume.txt",
            storage_reference="/tmp/resume.txt",
            file_size=10,
            modality=ResumeModality.DOCUMENT
        )

        fetched = record_store.get(record.id)
        assert fetched.original_name == "resume.txt"

    def test_get_missing_raises(self, record_store):
        with pytest.raises(NotFound):
            record_store.get(9999)

    def test_get_owner(self, record_store, test_user):
        assert record_store.get_owner(test_user.id).username == "test_user"
        with pytest.raises(NotFound):
            record_store.get_owner(9999)

    def test_get_for_user_foreign_raises(self, record_store, test_user, other_user):
        record = record_store.create(
            user_id=test_user.id,
            original_name="resume.txt",
            storage_reference="/tmp/resume.txt",
            file_size=10,
            modality=ResumeModality.DOCUMENT
        )

        with pytest.raises(NotFound):
            record_store.get_for_user(record.id, other_user.id)

    def test_update_visible_to_later_reads(self, record_store, test_user):
        """测试每次更新独立提交，之后的读取可见"""
        record = record_store.create(
            user_id=test_user.id,
            original_name="resume.txt",
            storage_reference="/tmp/resume.txt",
            file_size=10,
            modality=ResumeModality.DOCUMENT
        )

        record_store.update(record.id, processing_status=ProcessingStatus.PARSING, processing_metadata={"a": 1})

        fetched = record_store.get(record.id)
        assert fetched.processing_status == ProcessingStatus.PARSING
        assert fetched.processing_metadata == {"a": 1}

    def test_list_by_user(self, record_store, test_user, other_user):
        for modality in (ResumeModality.DOCUMENT, ResumeModality.VOICE):
            record_store.create(
                user_id=test_user.id,
                original_name="resume",
                storage_reference="/tmp/resume",
                file_size=10,
                modality=modality
            )

        assert len(record_store.list_by_user(test_user.id)) == 2
        assert len(record_store.list_by_user(test_user.id, modality=ResumeModality.VOICE)) == 1
        assert record_store.list_by_user(other_user.id) == []


class TestJobComparisonRepository:
    """测试 JobComparisonRepository"""

    def test_create_comparison(self, comparison_repository, resume_repository, test_user):
        """测试保存对比结果并冗余总分"""
        resume = _create(resume_repository, test_user)

        comparison = comparison_repository.create(
            resume_id=resume.id,
            user_id=test_user.id,
            job_description="Senior Python developer",
            result=_comparison_result(72),
            job_title="Backend Engineer",
            company_name="Acme"
        )

        assert comparison.id is not None
        assert comparison.overall_match_score == 72
        assert comparison.match_quality == "Good Match"
        assert comparison.comparison_result["job_requirements"]["required_skills"] == ["Python"]

    def test_history_by_resume(self, comparison_repository, resume_repository, test_user):
        """测试按简历查询对比历史（最新的在前）"""
        resume = _create(resume_repository, test_user)
        other_resume = _create(resume_repository, test_user)

        first = comparison_repository.create(resume.id, test_user.id, "job A", _comparison_result(40))
        second = comparison_repository.create(resume.id, test_user.id, "job B", _comparison_result(90))
        comparison_repository.create(other_resume.id, test_user.id, "job C", _comparison_result(60))

        history = comparison_repository.get_by_resume(resume.id)

        assert [c.id for c in history] == [second.id, first.id]
        assert len(comparison_repository.get_by_resume(resume.id, limit=1)) == 1

    def test_by_user_sorted_by_score(self, comparison_repository, resume_repository, test_user):
        resume = _create(resume_repository, test_user)
        for score in (40, 90, 60):
            comparison_repository.create(resume.id, test_user.id, "job", _comparison_result(score))

        scores = [c.overall_match_score for c in comparison_repository.get_by_user(test_user.id)]
        assert scores == [90, 60, 40]
