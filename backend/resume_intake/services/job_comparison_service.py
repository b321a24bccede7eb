"""
简历-职位对比服务

流程：
1. 职位描述启发式解析：技能提及、必需/加分项判断、经验年限与级别、学历要求
2. 四个维度评分：技能（必需 70% + 加分 30%）、经验、学历、语义相似度
3. 加权总分 + 匹配等级 + 解读 + 改进建议
4. compare_and_store 把结果写入 resume_job_comparisons 表（写入后不可修改）
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from resume_intake.ai.huggingface_client import HuggingFaceInferenceClient
from resume_intake.errors import ExternalServiceError, NotFound
from resume_intake.models.base import utc_now
from resume_intake.models.job_comparison import JobComparisonRecord
from resume_intake.models.payloads import (
    ComparisonResult,
    EducationAnalysis,
    EducationRequirements,
    ExperienceAnalysis,
    ExperienceRequirements,
    JobRequirements,
    MatchInsight,
    ParsedPayload,
    SkillsAnalysis,
)
from resume_intake.repositories.comparison_repository import JobComparisonRepository
from resume_intake.repositories.resume_repository import ResumeRecordStore
from .confidence_service import round_half_up

logger = logging.getLogger(__name__)

MATCHING_WEIGHTS = {
    "skills": 0.35,
    "experience": 0.25,
    "education": 0.15,
    "semantic": 0.25,
}

MATCH_QUALITIES = [
    (85, "Excellent Match"),
    (70, "Good Match"),
    (55, "Fair Match"),
    (0, "Poor Match"),
]

SEMANTIC_FALLBACK_SCORE = 50
SIMILARITY_TEXT_LIMIT = 512
SKILL_CONTEXT_CHARS = 50

# 技能提及按家族匹配，结果统一为这里的规范写法
SKILL_FAMILIES = [
    ["JavaScript", "Python", "Java", "C++", "Ruby", "Golang", "Rust", "TypeScript", "PHP", "Swift"],
    ["React", "Angular", "Vue", "Node.js", "Django", "Flask", "Spring", "Express"],
    ["AWS", "Azure", "GCP", "Docker", "Kubernetes", "Jenkins", "Git", "CI/CD"],
    ["SQL", "NoSQL", "MongoDB", "PostgreSQL", "MySQL", "Redis", "Elasticsearch"],
    ["Machine Learning", "AI", "Data Science", "Deep Learning", "NLP"],
]
CANONICAL_SKILLS = {name.lower(): name for family in SKILL_FAMILIES for name in family}
SKILL_PATTERNS = [
    re.compile(r"(?<!\w)(" + "|".join(re.escape(name) for name in family) + r")(?!\w)", re.IGNORECASE)
    for family in SKILL_FAMILIES
]

REQUIRED_INDICATORS = re.compile(r"required|must have|essential|mandatory", re.IGNORECASE)
PREFERRED_INDICATORS = re.compile(r"preferred|nice to have|bonus|desired|plus", re.IGNORECASE)

SKILL_SYNONYMS = {
    "js": "javascript",
    "ts": "typescript",
    "nodejs": "node.js",
    "node": "node.js",
    "react.js": "react",
    "reactjs": "react",
    "vuejs": "vue",
    "vue.js": "vue",
    "angularjs": "angular",
    "postgres": "postgresql",
    "mongo": "mongodb",
    "k8s": "kubernetes",
    "go": "golang",
}

LEVEL_HIERARCHY = {
    "Entry Level": 1,
    "Junior": 2,
    "Mid-Level": 3,
    "Senior": 4,
    "Lead/Principal": 5,
}
JOB_LEVEL_PATTERN = re.compile(r"\b(entry[- ]level|junior|mid[- ]level|senior|lead|principal)\b", re.IGNORECASE)
JOB_LEVEL_LABELS = {
    "entry level": "Entry Level",
    "junior": "Junior",
    "mid level": "Mid-Level",
    "senior": "Senior",
    "lead": "Lead/Principal",
    "principal": "Lead/Principal",
}

YEARS_REQUIRED_PATTERN = re.compile(r"(\d+)\+?\s*(?:years?|yrs?)(?:\s+of)?\s+experience", re.IGNORECASE)
CANDIDATE_YEARS_PATTERN = re.compile(r"(\d+)\s*(?:years?|yrs?)", re.IGNORECASE)

DEGREE_PATTERN = re.compile(r"(?:bachelor|master|phd|doctorate|associate)(?:'s)?(?:\s+degree)?", re.IGNORECASE)
DEGREE_HIERARCHY = {
    "high school": 1,
    "associate": 2,
    "bachelor": 3,
    "master": 4,
    "phd": 5,
}

FIELD_VARIATIONS = {
    "computer science": ["cs", "computing", "software engineering"],
    "electrical engineering": ["ee", "electronics"],
    "mechanical engineering": ["me", "mechanics"],
    "business": ["mba", "management", "commerce"],
}

LEARNING_RESOURCES = {
    "javascript": ["MDN Web Docs", "freeCodeCamp", "JavaScript.info"],
    "react": ["React Official Docs", "Scrimba React Course", "Full Stack Open"],
    "python": ["Python.org Tutorial", "Codecademy Python", "Real Python"],
    "aws": ["AWS Free Tier", "AWS Skill Builder", "Cloud Guru"],
    "docker": ["Docker Official Docs", "Docker Labs", "Play with Docker"],
    "kubernetes": ["Kubernetes.io", "Killercoda", "CNCF Training"],
}
DEFAULT_RESOURCES = ["Online tutorials", "Documentation", "Hands-on projects"]


# ==================== 职位描述解析 ====================

def extract_skill_mentions(text: str) -> List[str]:
    """按技能家族匹配职位描述中的技能，去重并统一写法"""
    skills: List[str] = []
    for pattern in SKILL_PATTERNS:
        for match in pattern.finditer(text):
            canonical = CANONICAL_SKILLS[match.group(1).lower()]
            if canonical not in skills:
                skills.append(canonical)
    return skills


def skill_context(skill: str, text: str) -> str:
    index = text.lower().find(skill.lower())
    if index == -1:
        return ""
    start = max(0, index - SKILL_CONTEXT_CHARS)
    end = min(len(text), index + len(skill) + SKILL_CONTEXT_CHARS)
    return text[start:end]


def classify_requirement(skill: str, text: str) -> str:
    """根据技能附近的措辞判断 required / preferred，默认 required"""
    context = skill_context(skill, text)
    if REQUIRED_INDICATORS.search(context):
        return "required"
    if PREFERRED_INDICATORS.search(context):
        return "preferred"
    return "required"


def extract_experience_requirements(text: str) -> ExperienceRequirements:
    years_match = YEARS_REQUIRED_PATTERN.search(text)
    level_match = JOB_LEVEL_PATTERN.search(text)

    level = None
    if level_match:
        key = level_match.group(1).lower().replace("-", " ")
        level = JOB_LEVEL_LABELS.get(key)

    return ExperienceRequirements(
        years=int(years_match.group(1)) if years_match else None,
        level=level
    )


def extract_education_requirements(text: str) -> EducationRequirements:
    degree_match = DEGREE_PATTERN.search(text)
    if not degree_match:
        return EducationRequirements()

    degree = degree_match.group(0)
    field = None
    field_match = re.search(
        re.escape(degree) + r".*?(?:in|of)\s+([A-Za-z\s]+?)(?:\.|,|;|\s+or|\s+and|$)",
        text,
        re.IGNORECASE
    )
    if field_match:
        field = field_match.group(1).strip()

    return EducationRequirements(required=True, degree=degree, field=field)


def parse_job_description(text: str) -> JobRequirements:
    required, preferred = [], []
    for skill in extract_skill_mentions(text):
        if classify_requirement(skill, text) == "preferred":
            preferred.append(skill)
        else:
            required.append(skill)

    return JobRequirements(
        required_skills=required,
        preferred_skills=preferred,
        experience=extract_experience_requirements(text),
        education=extract_education_requirements(text)
    )


# ==================== 各维度分析 ====================

def _normalize_skill(skill: str) -> str:
    normalized = skill.lower().strip()
    return SKILL_SYNONYMS.get(normalized, normalized)


def skill_tokens(skill: str) -> set:
    """规范化（同义词归一）后的技能词集合"""
    normalized = _normalize_skill(skill)
    return {SKILL_SYNONYMS.get(token, token) for token in re.split(r"[\s/,]+", normalized) if token}


def skills_match(candidate_skill: str, job_skill: str) -> bool:
    """规范化后相同，或一方的词集合包含另一方（"Python 3" 匹配 "Python"，"Java" 不匹配 "JavaScript"）"""
    if _normalize_skill(candidate_skill) == _normalize_skill(job_skill):
        return True
    tokens_a, tokens_b = skill_tokens(candidate_skill), skill_tokens(job_skill)
    return bool(tokens_a and tokens_b) and (tokens_a <= tokens_b or tokens_b <= tokens_a)


def interpret_skills_match(matched: int, missing: int) -> str:
    total = matched + missing
    if total == 0:
        return "No specific required skills listed"

    percentage = round(matched / total * 100)
    if percentage == 100:
        return "Perfect match - all required skills present"
    if percentage >= 80:
        return "Strong match - most required skills present"
    if percentage >= 60:
        return "Moderate match - some skill gaps to address"
    return "Weak match - significant skill gaps"


def analyze_skills(candidate_skills: List[str], required: List[str], preferred: List[str]) -> SkillsAnalysis:
    def has(job_skill: str) -> bool:
        return any(skills_match(skill, job_skill) for skill in candidate_skills)

    required_matched = [s for s in required if has(s)]
    required_missing = [s for s in required if not has(s)]
    preferred_matched = [s for s in preferred if has(s)]
    preferred_missing = [s for s in preferred if not has(s)]

    job_skills = required + preferred
    additional = [
        skill for skill in candidate_skills
        if not any(skills_match(skill, job_skill) for job_skill in job_skills)
    ]

    required_score = len(required_matched) / len(required) * 100 if required else 100
    # 没有列出加分项时不因此扣分
    preferred_score = len(preferred_matched) / len(preferred) * 100 if preferred else 100

    return SkillsAnalysis(
        required_matched=required_matched,
        required_missing=required_missing,
        preferred_matched=preferred_matched,
        preferred_missing=preferred_missing,
        additional_skills=additional,
        match_score=round_half_up(required_score * 0.7 + preferred_score * 0.3),
        interpretation=interpret_skills_match(len(required_matched), len(required_missing))
    )


def analyze_experience(
    candidate_level: Optional[str],
    candidate_experience: Optional[str],
    requirements: ExperienceRequirements
) -> ExperienceAnalysis:
    """级别差距评分；职位要求年限且简历提到年限时，与年限得分取平均"""
    # 未知级别按 Mid-Level 处理
    candidate_value = LEVEL_HIERARCHY.get(candidate_level, 3)
    required_value = LEVEL_HIERARCHY.get(requirements.level, 3)
    difference = candidate_value - required_value

    if difference >= 0:
        score = max(0, 100 - difference * 10)
        interpretation = (
            "Perfect experience level match" if difference == 0
            else "Candidate exceeds experience requirements"
        )
    else:
        score = max(0, 100 + difference * 25)
        interpretation = "Candidate below required experience level"

    candidate_years = None
    years_match = CANDIDATE_YEARS_PATTERN.search(candidate_experience or "")
    if years_match and requirements.years:
        candidate_years = int(years_match.group(1))
        deficit = requirements.years - candidate_years
        years_score = 100 if deficit <= 0 else max(0, 100 - deficit * 20)
        score = round_half_up((score + years_score) / 2)

    return ExperienceAnalysis(
        candidate_level=candidate_level,
        required_level=requirements.level,
        years_required=requirements.years,
        candidate_years=candidate_years,
        match_score=score,
        interpretation=interpretation
    )


def extract_degree_level(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lower_text = text.lower()
    if "phd" in lower_text or "doctorate" in lower_text:
        return "phd"
    for level in ("master", "bachelor", "associate", "high school"):
        if level in lower_text:
            return level
    return None


def field_matches(education: str, required_field: str) -> bool:
    education_lower = education.lower()
    field_lower = required_field.lower()

    if field_lower in education_lower:
        return True

    for field, variations in FIELD_VARIATIONS.items():
        if field_lower in field or field in field_lower:
            return any(re.search(rf"\b{re.escape(v)}\b", education_lower) for v in variations)

    return False


def analyze_education(education: Optional[str], requirements: EducationRequirements) -> EducationAnalysis:
    if not requirements.required:
        return EducationAnalysis(
            meets_requirements=True,
            match_score=100,
            interpretation="No specific education requirements"
        )

    analysis = EducationAnalysis(
        meets_requirements=False,
        match_score=50,
        interpretation="Education level could not be determined"
    )

    required_level = extract_degree_level(requirements.degree)
    candidate_level = extract_degree_level(education)
    if required_level and candidate_level:
        gap = DEGREE_HIERARCHY[required_level] - DEGREE_HIERARCHY[candidate_level]
        if gap <= 0:
            analysis.meets_requirements = True
            analysis.match_score = 100
            analysis.interpretation = "Education requirements met or exceeded"
        else:
            analysis.match_score = max(0, 100 - gap * 25)
            analysis.interpretation = "Education below requirements"

    if requirements.field and education and field_matches(education, requirements.field):
        analysis.field_match = True
        analysis.match_score = min(100, analysis.match_score + 10)

    return analysis


def match_quality(score: int) -> str:
    for minimum, label in MATCH_QUALITIES:
        if score >= minimum:
            return label
    return MATCH_QUALITIES[-1][1]


def interpret_overall(score: int) -> str:
    if score >= 85:
        return "Excellent match! This candidate aligns very well with the job requirements."
    if score >= 70:
        return "Good match. The candidate meets most requirements with some minor gaps."
    if score >= 55:
        return "Fair match. The candidate has potential but needs to address several gaps."
    return "Poor match. Significant gaps exist between candidate profile and job requirements."


def suggest_learning_resources(skill: str) -> List[str]:
    skill_lower = skill.lower()
    for key, resources in LEARNING_RESOURCES.items():
        if skill_lower == key or skill_lower.startswith(key + " "):
            return resources[:2]
    return DEFAULT_RESOURCES


def resume_text(parsed: ParsedPayload) -> str:
    """拼接简历字段，供语义相似度使用"""
    parts = [
        parsed.name,
        parsed.current_job,
        parsed.experience,
        ", ".join(parsed.skills or []),
        parsed.education,
    ]
    return " ".join(part for part in parts if part)


class JobComparisonService:
    """简历-职位匹配分析"""

    def __init__(self, hf_client: HuggingFaceInferenceClient, store: Optional[ResumeRecordStore] = None):
        """
        Args:
            hf_client: Hugging Face 推理客户端（句子相似度）
            store: 简历记录存储，compare_and_store 需要
        """
        self.hf_client = hf_client
        self.store = store

    async def semantic_similarity(self, candidate_text: str, job_description: str) -> int:
        """句子相似度 * 100；调用失败或文本为空时返回中性分 50"""
        if not candidate_text.strip() or not job_description.strip():
            return SEMANTIC_FALLBACK_SCORE

        try:
            scores = await self.hf_client.sentence_similarity(
                candidate_text[:SIMILARITY_TEXT_LIMIT],
                [job_description[:SIMILARITY_TEXT_LIMIT]]
            )
        except ExternalServiceError as e:
            logger.warning("[JobComparison] Semantic similarity failed, using neutral score: %s", e)
            return SEMANTIC_FALLBACK_SCORE

        if not scores:
            return SEMANTIC_FALLBACK_SCORE
        return max(0, min(100, round_half_up(scores[0] * 100)))

    def generate_insights(
        self,
        skills: SkillsAnalysis,
        experience: ExperienceAnalysis,
        overall_interpretation: str
    ) -> List[MatchInsight]:
        insights = [MatchInsight(type="overall", message=overall_interpretation, importance="high")]

        if not skills.required_missing:
            insights.append(MatchInsight(
                type="skills",
                message="Candidate has all required technical skills",
                importance="high",
                positive=True
            ))
        else:
            insights.append(MatchInsight(
                type="skills",
                message=(
                    f"Missing {len(skills.required_missing)} required skills: "
                    f"{', '.join(skills.required_missing[:3])}"
                ),
                importance="high",
                positive=False
            ))

        insights.append(MatchInsight(
            type="experience",
            message=experience.interpretation,
            importance="medium",
            positive=experience.match_score >= 70
        ))

        if len(skills.additional_skills) > 3:
            insights.append(MatchInsight(
                type="bonus",
                message=(
                    f"Candidate brings {len(skills.additional_skills)} additional skills "
                    "not mentioned in the job description"
                ),
                importance="low",
                positive=True
            ))

        return insights

    def generate_recommendations(self, requirements: JobRequirements, skills: SkillsAnalysis) -> List[Dict[str, Any]]:
        recommendations = []

        if skills.required_missing:
            recommendations.append({
                "category": "Skills Development",
                "priority": "high",
                "suggestions": [
                    {
                        "skill": skill,
                        "action": f"Learn or gain experience with {skill}",
                        "resources": suggest_learning_resources(skill),
                    }
                    for skill in skills.required_missing[:5]
                ],
            })

        if skills.match_score < 70:
            recommendations.append({
                "category": "Resume Optimization",
                "priority": "medium",
                "suggestions": [
                    {
                        "action": "Highlight relevant project experience",
                        "detail": "Add specific projects that demonstrate the required skills",
                    },
                    {
                        "action": "Use job-specific keywords",
                        "detail": f"Include terms like: {', '.join(requirements.required_skills[:3])}",
                    },
                ],
            })

        return recommendations

    async def compare(self, parsed: ParsedPayload, job_description: str) -> ComparisonResult:
        """对比解析后的简历与职位描述"""
        requirements = parse_job_description(job_description)
        enhancement = parsed.ai_enhancement

        skills = analyze_skills(parsed.skills or [], requirements.required_skills, requirements.preferred_skills)
        experience = analyze_experience(
            enhancement.experience_level if enhancement else None,
            parsed.experience,
            requirements.experience
        )
        education = analyze_education(parsed.education, requirements.education)
        semantic = await self.semantic_similarity(resume_text(parsed), job_description)

        overall = round_half_up(
            skills.match_score * MATCHING_WEIGHTS["skills"]
            + experience.match_score * MATCHING_WEIGHTS["experience"]
            + education.match_score * MATCHING_WEIGHTS["education"]
            + semantic * MATCHING_WEIGHTS["semantic"]
        )
        interpretation = interpret_overall(overall)

        logger.info("[JobComparison] Overall match %s (%s)", overall, match_quality(overall))
        return ComparisonResult(
            overall_score=overall,
            match_quality=match_quality(overall),
            interpretation=interpretation,
            skills=skills,
            experience=experience,
            education=education,
            semantic_similarity=semantic,
            insights=self.generate_insights(skills, experience, interpretation),
            recommendations=self.generate_recommendations(requirements, skills),
            job_requirements=requirements,
            timestamp=utc_now()
        )

    async def compare_and_store(
        self,
        resume_id: int,
        owner_id: int,
        job_description: str,
        job_title: Optional[str] = None,
        company_name: Optional[str] = None
    ) -> JobComparisonRecord:
        """
        对比并保存结果

        Raises:
            NotFound: 简历不存在、不属于该用户或尚未解析
        """
        if self.store is None:
            raise RuntimeError("JobComparisonService.compare_and_store requires a record store")

        record = self.store.get_for_user(resume_id, owner_id)
        parsed = record.get_parsed_payload()
        if parsed is None:
            raise NotFound(f"Resume {resume_id} has no parsed data to compare")

        result = await self.compare(parsed, job_description)

        with Session(self.store.engine) as session:
            return JobComparisonRepository(session).create(
                resume_id=resume_id,
                user_id=owner_id,
                job_description=job_description,
                result=result,
                job_title=job_title,
                company_name=company_name
            )
