"""
简历 AI 增强服务

在基础解析结果之上叠加：
1. 命名实体识别（人名 / 机构 / 地点 / 其他）
2. 技能零样本分类
3. 经验级别推断
4. 相关技能推荐（静态共现表）
5. 完整度评分
6. 改进建议

各项能力相互独立，任何一项失败只记录到 capability_errors，不影响其他能力；
增强结果挂在 ParsedPayload.ai_enhancement 下，基础抽取字段不会被覆盖。
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from resume_intake.ai.huggingface_client import HuggingFaceInferenceClient
from resume_intake.errors import ExternalServiceError
from resume_intake.models.base import utc_now
from resume_intake.models.payloads import (
    CategorizedSkill,
    CategoryScore,
    CompletenessScore,
    EnhancementPayload,
    EntityGroups,
    EntityMention,
    ParsedPayload,
)
from .job_comparison_service import skill_tokens
from .parsing_service import is_valid_email

logger = logging.getLogger(__name__)

# 响应结构异常也按能力失败处理
CAPABILITY_ERRORS = (ExternalServiceError, KeyError, IndexError, TypeError, ValueError)

SKILL_CATEGORIES = [
    "Frontend Development",
    "Backend Development",
    "Database",
    "DevOps",
    "Mobile Development",
    "Data Science",
    "Cloud Computing",
    "Programming Language",
]
CATEGORY_MIN_SCORE = 0.3
MAX_CATEGORIES_PER_SKILL = 2

EXPERIENCE_LEVELS = ["Entry Level", "Junior", "Mid-Level", "Senior", "Lead/Principal"]
EXPERIENCE_HYPOTHESIS = "This person is a {} developer"
EXPERIENCE_EXCERPT_CHARS = 500

ENTITY_GROUP_FIELDS = {
    "PER": "persons",
    "ORG": "organizations",
    "LOC": "locations",
}

RELATED_SKILLS: Dict[str, List[str]] = {
    "React": ["Redux", "Next.js", "TypeScript", "JavaScript", "Webpack"],
    "Node.js": ["Express.js", "MongoDB", "PostgreSQL", "TypeScript", "REST APIs"],
    "Python": ["Django", "Flask", "NumPy", "Pandas", "TensorFlow"],
    "Ruby on Rails": ["Ruby", "PostgreSQL", "Redis", "Sidekiq", "RSpec"],
    "JavaScript": ["TypeScript", "ES6+", "npm", "Webpack", "Babel"],
    "Java": ["Spring Boot", "Maven", "Hibernate", "JUnit"],
    "Docker": ["Kubernetes", "Docker Compose", "CI/CD"],
    "AWS": ["EC2", "S3", "Lambda", "CloudFormation"],
}

REQUIRED_FIELDS = ["name", "email", "phone", "skills", "experience", "education"]


# ==================== 纯规则能力 ====================

def mentions_skill(skill: str, name: str) -> bool:
    """skill 的词集合是否包含 name 的全部词（"Python 3" 提到 Python，"JavaScript" 没有提到 Java）"""
    name_tokens = skill_tokens(name)
    return bool(name_tokens) and name_tokens <= skill_tokens(skill)


def suggest_related_skills(skills: List[str]) -> List[str]:
    """根据共现表推荐候选人尚未列出的相关技能（保持表中顺序，去重）"""
    suggestions: List[str] = []

    for key, related in RELATED_SKILLS.items():
        if not any(mentions_skill(skill, key) for skill in skills):
            continue
        for candidate in related:
            already_listed = any(mentions_skill(skill, candidate) for skill in skills)
            if not already_listed and candidate not in suggestions:
                suggestions.append(candidate)

    return suggestions


def calculate_completeness(parsed: ParsedPayload) -> CompletenessScore:
    """必填字段中非空的比例"""
    missing = [field for field in REQUIRED_FIELDS if not getattr(parsed, field)]
    present = len(REQUIRED_FIELDS) - len(missing)
    return CompletenessScore(
        score=round(present / len(REQUIRED_FIELDS) * 100),
        missing_fields=missing
    )


def generate_improvement_suggestions(
    parsed: ParsedPayload,
    experience_level: Optional[str] = None
) -> List[str]:
    suggestions = []

    if not parsed.name:
        suggestions.append("State your full name clearly at the beginning")

    if not parsed.email:
        suggestions.append("Add an email address so employers can contact you")
    elif not is_valid_email(parsed.email) or " at " in parsed.email:
        suggestions.append("Provide email in standard format (user@domain.com)")

    if not parsed.phone:
        suggestions.append("Include a phone number in your contact information")

    if not parsed.experience or len(parsed.experience) < 50:
        suggestions.append("Add more detail about your work experience")

    if parsed.skills is not None and len(parsed.skills) < 5:
        suggestions.append("Mention more technical skills relevant to your field")

    if not parsed.education or len(parsed.education) < 20:
        suggestions.append("Include degree, major, and graduation year for education")

    if experience_level == "Entry Level":
        suggestions.append("Add personal projects to demonstrate practical experience")

    return suggestions


class EnhancementService:
    """基于 Hugging Face 零样本分类与 NER 的增强适配器"""

    def __init__(self, hf_client: HuggingFaceInferenceClient, inter_call_delay_seconds: float = 0.0):
        """
        Args:
            hf_client: Hugging Face 推理客户端
            inter_call_delay_seconds: 逐个技能分类时相邻调用的间隔
        """
        self.hf_client = hf_client
        self.inter_call_delay_seconds = inter_call_delay_seconds

    # ==================== 远程能力 ====================

    async def extract_entities(self, text: str) -> EntityGroups:
        """命名实体识别，按类型分组并去重（同名实体保留最高分）"""
        results = await self.hf_client.token_classification(text)
        best: Dict[Tuple[str, str], EntityMention] = {}

        for item in results:
            entity_text = str(item["word"]).replace("##", "").strip()
            if not entity_text:
                continue
            group = ENTITY_GROUP_FIELDS.get(item.get("entity_group"), "misc")
            key = (group, entity_text.lower())
            score = float(item["score"])
            if key not in best or best[key].score < score:
                best[key] = EntityMention(text=entity_text, score=score)

        grouped: Dict[str, List[EntityMention]] = {"persons": [], "organizations": [], "locations": [], "misc": []}
        for (group, _), mention in best.items():
            grouped[group].append(mention)

        return EntityGroups(**grouped)

    async def categorize_skills(self, skills: List[str]) -> Tuple[List[CategorizedSkill], Dict[str, List[str]]]:
        """
        逐个技能做零样本分类，保留得分 > 0.3 的前两个类别

        单个技能失败时该技能类别为空；全部失败时抛出最后一个异常

        Returns:
            (逐技能分类结果, 类别 -> 技能列表)
        """
        categorized: List[CategorizedSkill] = []
        last_error: Optional[Exception] = None
        failures = 0

        for index, skill in enumerate(skills):
            if index > 0 and self.inter_call_delay_seconds > 0:
                await asyncio.sleep(self.inter_call_delay_seconds)
            try:
                result = await self.hf_client.zero_shot_classification(
                    skill, SKILL_CATEGORIES, multi_label=True
                )
                categories = [
                    CategoryScore(category=label, score=float(score))
                    for label, score in zip(result["labels"], result["scores"])
                    if score > CATEGORY_MIN_SCORE
                ][:MAX_CATEGORIES_PER_SKILL]
            except CAPABILITY_ERRORS as e:
                logger.warning("[EnhancementService] Failed to categorize skill '%s': %s", skill, e)
                last_error = e
                failures += 1
                categories = []
            categorized.append(CategorizedSkill(skill=skill, categories=categories))

        if skills and failures == len(skills):
            raise last_error

        by_category: Dict[str, List[str]] = {}
        for item in categorized:
            for category in item.categories:
                by_category.setdefault(category.category, []).append(item.skill)

        return categorized, by_category

    async def infer_experience_level(self, text: str) -> Tuple[str, float, Dict[str, float]]:
        """
        经验级别推断

        Returns:
            (最可能的级别, 置信度, 级别 -> 得分)
        """
        result = await self.hf_client.zero_shot_classification(
            f"Resume content: {text[:EXPERIENCE_EXCERPT_CHARS]}...",
            EXPERIENCE_LEVELS,
            hypothesis_template=EXPERIENCE_HYPOTHESIS
        )
        labels = result["labels"]
        scores = [float(s) for s in result["scores"]]
        return labels[0], scores[0], dict(zip(labels, scores))

    # ==================== 总入口 ====================

    async def enhance(self, parsed: ParsedPayload, source_text: str) -> ParsedPayload:
        """
        增强解析结果

        Returns:
            新的 ParsedPayload：成功时 enhanced=True 且带 ai_enhancement；
            所有远程能力都失败时 enhanced=False 且带 enhancement_error
        """
        errors: Dict[str, str] = {}
        attempted = 0

        entities = None
        attempted += 1
        try:
            entities = await self.extract_entities(source_text)
        except CAPABILITY_ERRORS as e:
            logger.warning("[EnhancementService] Entity extraction failed: %s", e)
            errors["entities"] = str(e)

        categorized: List[CategorizedSkill] = []
        by_category: Dict[str, List[str]] = {}
        if parsed.skills:
            attempted += 1
            try:
                categorized, by_category = await self.categorize_skills(parsed.skills)
            except CAPABILITY_ERRORS as e:
                logger.warning("[EnhancementService] Skill categorization failed: %s", e)
                errors["skill_categorization"] = str(e)

        level, level_confidence, level_scores = None, None, {}
        attempted += 1
        try:
            level, level_confidence, level_scores = await self.infer_experience_level(source_text)
        except CAPABILITY_ERRORS as e:
            logger.warning("[EnhancementService] Experience level inference failed: %s", e)
            errors["experience_level"] = str(e)

        if len(errors) == attempted:
            message = "; ".join(f"{name}: {error}" for name, error in errors.items())
            logger.error("[EnhancementService] All enhancement capabilities failed")
            return parsed.model_copy(update={
                "enhanced": False,
                "enhancement_error": message,
                "ai_enhancement": None
            })

        enhancement = EnhancementPayload(
            entities=entities,
            categorized_skills=categorized,
            skills_by_category=by_category,
            experience_level=level,
            experience_level_confidence=level_confidence,
            experience_level_scores=level_scores,
            suggested_skills=suggest_related_skills(parsed.skills or []),
            completeness=calculate_completeness(parsed),
            improvement_suggestions=generate_improvement_suggestions(parsed, level),
            capability_errors=errors,
            enhanced_at=utc_now()
        )
        logger.info(
            "[EnhancementService] Enhancement finished (level=%s, %s capability errors)",
            level, len(errors)
        )
        return parsed.model_copy(update={
            "enhanced": True,
            "enhancement_error": None,
            "ai_enhancement": enhancement
        })

    def degrade(self, parsed: ParsedPayload, error: Exception) -> ParsedPayload:
        """整个适配器抛错时的降级结果：保留基础解析，标记 enhanced=False"""
        return parsed.model_copy(update={
            "enhanced": False,
            "enhancement_error": str(error) or error.__class__.__name__,
            "ai_enhancement": None
        })
