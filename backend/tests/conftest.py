"""
Pytest 测试配置
提供测试数据库、Fake AI 客户端、示例简历文件等测试基础设施
"""

import sys
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

# 添加 backend 目录到 sys.path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from resume_intake.ai.speech_to_text import SpeechToTextClient
from resume_intake.db.init_db import create_tables
from resume_intake.models import User
from resume_intake.repositories import UserRepository
from resume_intake.services.enhancement_service import EXPERIENCE_LEVELS
from resume_intake.services.parsing_service import DEFAULT_EXTRACTION_TASKS


SAMPLE_TRANSCRIPT = (
    "Hi, my name is John Smith and I am a senior software engineer based in Boston. "
    "You can reach me at john.smith@example.com or call 555-123-4567. "
    "I have eight years of experience building web platforms. "
    "Currently I work at Acme Corporation where I lead a team of five developers. "
    "My previous role was backend developer at Globex where I designed payment services. "
    "My skills include Python, Django, React, PostgreSQL and Docker, and I am proficient in "
    "designing REST APIs for large products. "
    "I graduated from the Massachusetts Institute of Technology with a bachelor degree in computer science. "
    "I also hold a cloud certification from a major provider. "
    "In my free time I mentor junior engineers and contribute to open source projects. "
    "I am looking for a role where I can grow into technical leadership."
)

SAMPLE_DOCUMENT = """John Smith
john.smith@example.com | 555-123-4567 | Boston, MA

Summary
Senior software engineer with 8 years of experience building web platforms.

Experience
Senior Developer, Acme Corporation (2019 - present)
Backend Developer, Globex (2016 - 2019)

Skills
Python, Django, React, PostgreSQL, Docker

Education
BS Computer Science, Massachusetts Institute of Technology
"""

# 问题 -> 字段，Fake 问答按字段返回答案
_QUESTION_FIELDS = {task.question: task.target_field for task in DEFAULT_EXTRACTION_TASKS}

DEFAULT_QA_ANSWERS: Dict[str, Dict[str, Any]] = {
    "name": {"answer": "John Smith", "score": 0.92},
    "email": {"answer": "john.smith@example.com", "score": 0.85},
    "phone": {"answer": "555-123-4567", "score": 0.7},
    "skills": {"answer": "Python, Django, React, PostgreSQL, Docker", "score": 0.6},
    "current_job": {"answer": "Senior Developer at Acme Corporation", "score": 0.55},
    "education": {"answer": "BS Computer Science, Massachusetts Institute of Technology", "score": 0.5},
    "experience": {"answer": "8 years of experience building web platforms", "score": 0.45},
}

DEFAULT_ENTITIES = [
    {"word": "John Smith", "entity_group": "PER", "score": 0.95},
    {"word": "Acme Corporation", "entity_group": "ORG", "score": 0.9},
    {"word": "Boston", "entity_group": "LOC", "score": 0.85},
]


# ==================== Fake AI 客户端 ====================

class FakeHuggingFaceClient:
    """
    HuggingFaceInferenceClient 的替身

    failures: 能力名 -> 调用时抛出的异常
    calls: 按调用顺序记录 (能力名, 主要输入)
    """

    def __init__(self):
        self.qa_answers: Dict[str, Dict[str, Any]] = dict(DEFAULT_QA_ANSWERS)
        self.entities: List[Dict[str, Any]] = list(DEFAULT_ENTITIES)
        self.similarity: float = 0.8
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.qa_contexts: List[str] = []

    def _record(self, capability: str, payload: Any) -> None:
        self.calls.append((capability, payload))
        if capability in self.failures:
            raise self.failures[capability]

    def calls_for(self, capability: str) -> List[Any]:
        return [payload for name, payload in self.calls if name == capability]

    async def question_answering(self, question: str, context: str) -> Dict[str, Any]:
        self._record("question_answering", question)
        self.qa_contexts.append(context)
        field = _QUESTION_FIELDS.get(question)
        return dict(self.qa_answers.get(field, {"answer": "", "score": 0.0}))

    async def zero_shot_classification(
        self,
        text: str,
        candidate_labels: List[str],
        multi_label: bool = False,
        hypothesis_template: Optional[str] = None
    ) -> Dict[str, Any]:
        if candidate_labels == EXPERIENCE_LEVELS:
            self._record("experience_level", text)
            return {
                "labels": ["Senior", "Mid-Level", "Lead/Principal", "Junior", "Entry Level"],
                "scores": [0.6, 0.2, 0.1, 0.06, 0.04],
            }

        self._record("zero_shot", text)
        scores = [0.9, 0.4] + [0.05] * (len(candidate_labels) - 2)
        return {"labels": list(candidate_labels), "scores": scores}

    async def token_classification(self, text: str) -> List[Dict[str, Any]]:
        self._record("token_classification", text)
        return [dict(entity) for entity in self.entities]

    async def sentence_similarity(self, source_sentence: str, sentences: List[str]) -> List[float]:
        self._record("sentence_similarity", source_sentence)
        return [self.similarity for _ in sentences]


class FakeSpeechToTextClient(SpeechToTextClient):
    """语音转写替身：返回固定文本，或抛出预设异常"""

    service_name = "fake_whisper"
    method_name = "fake-whisper"

    def __init__(self, text: str = SAMPLE_TRANSCRIPT, error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Tuple[str, int, Optional[str]]] = []

    async def transcribe(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        self.calls.append((filename, len(audio), prompt))
        if self.error is not None:
            raise self.error
        return self.text


# ==================== 数据库 Fixtures ====================

@pytest.fixture(scope="function")
def test_db_engine():
    """
    创建测试用的内存数据库引擎
    StaticPool 保证所有 Session（包括 ResumeRecordStore 内部打开的）共用同一个连接
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    # 创建所有表
    create_tables(engine)

    yield engine


@pytest.fixture(scope="function")
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """
    创建测试用的数据库会话
    """
    with Session(test_db_engine) as session:
        yield session


# ==================== 测试数据 Fixtures ====================

@pytest.fixture(scope="function")
def test_user(test_db_session: Session) -> User:
    """
    创建测试用户
    """
    return UserRepository(test_db_session).create(
        "test_user", basic_info={"name": "测试用户", "city": "Beijing"}
    )


@pytest.fixture(scope="function")
def other_user(test_db_session: Session) -> User:
    """
    另一个用户，用于归属校验
    """
    return UserRepository(test_db_session).create("other_user")


@pytest.fixture(scope="function")
def audio_file(tmp_path) -> Path:
    """
    本地语音简历文件（内容无意义，转写由 Fake 客户端完成）
    """
    path = tmp_path / "resume.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 2048)
    return path


@pytest.fixture(scope="function")
def document_file(tmp_path) -> Path:
    """
    本地纯文本简历
    """
    path = tmp_path / "resume.txt"
    path.write_text(SAMPLE_DOCUMENT, encoding="utf-8")
    return path


# ==================== Repository Fixtures ====================

@pytest.fixture(scope="function")
def resume_repository(test_db_session: Session):
    """
    创建 ResumeRepository 实例
    """
    from resume_intake.repositories.resume_repository import ResumeRepository
    return ResumeRepository(test_db_session)


@pytest.fixture(scope="function")
def comparison_repository(test_db_session: Session):
    """
    创建 JobComparisonRepository 实例
    """
    from resume_intake.repositories.comparison_repository import JobComparisonRepository
    return JobComparisonRepository(test_db_session)


@pytest.fixture(scope="function")
def record_store(test_db_engine):
    """
    创建 ResumeRecordStore 实例
    """
    from resume_intake.repositories.resume_repository import ResumeRecordStore
    return ResumeRecordStore(test_db_engine)


# ==================== Fake AI Fixtures ====================

@pytest.fixture(scope="function")
def fake_hf_client() -> FakeHuggingFaceClient:
    return FakeHuggingFaceClient()


@pytest.fixture(scope="function")
def fake_stt_client() -> FakeSpeechToTextClient:
    return FakeSpeechToTextClient()


@pytest.fixture(scope="function")
def orchestrator(record_store, fake_hf_client, fake_stt_client):
    """
    用 Fake 客户端组装的编排器，所有调用间隔为 0
    """
    from resume_intake.pipeline.orchestrator import PipelineOrchestrator
    from resume_intake.services import (
        EnhancementService,
        ParsingService,
        TranscriptionService,
    )

    return PipelineOrchestrator(
        store=record_store,
        transcription=TranscriptionService(fake_stt_client),
        parsing=ParsingService(fake_hf_client, inter_call_delay_seconds=0),
        enhancement=EnhancementService(fake_hf_client, inter_call_delay_seconds=0)
    )


# ==================== Pytest 配置 ====================

def pytest_configure(config):
    """
    Pytest 初始化配置
    """
    # 标记测试分类
    config.addinivalue_line(
        "markers", "unit: Unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: Slow running tests"
    )
