"""
置信度评分服务

把转写质量、字段抽取、实体识别、技能分类、经验推断和完整度七个分项
合成为一个 0-100 的总体置信度，附带等级、解读和改进建议。
不适用的分项（例如文档简历没有转写质量）为 None，不参与加权。
"""

import logging
import math
import re
from typing import Dict, List, Optional

from resume_intake.models.base import utc_now
from resume_intake.models.payloads import (
    ComponentScores,
    ConfidenceRecommendation,
    ConfidenceSummary,
    ParsedPayload,
    TranscriptionPayload,
)
from .parsing_service import is_valid_email

logger = logging.getLogger(__name__)

COMPONENT_WEIGHTS: Dict[str, float] = {
    "transcription_quality": 0.20,
    "name_extraction": 0.15,
    "contact_extraction": 0.10,
    "skills_categorization": 0.20,
    "experience_level_inference": 0.15,
    "entity_recognition": 0.10,
    "overall_completeness": 0.10,
}

# 从高到低匹配
CONFIDENCE_LEVELS = [
    (80, "High Confidence"),
    (60, "Medium Confidence"),
    (40, "Low Confidence"),
    (0, "Very Low Confidence"),
]

TRANSCRIPTION_QUALITY_SCORES = {"high": 100, "medium": 70, "low": 40}

CONTACT_PENALTIES = {
    "missing_email": 30,
    "invalid_email": 20,
    "missing_phone": 20,
    "invalid_phone": 15,
}

RECOMMENDATION_THRESHOLD = 70
MAX_RECOMMENDATIONS = 3

RECOMMENDATIONS: Dict[str, Dict[str, str]] = {
    "transcription_quality": {
        "component": "Audio Quality",
        "issue": "Low transcription confidence",
        "suggestion": "Record in a quiet room with minimal background noise",
        "impact": "high",
    },
    "name_extraction": {
        "component": "Name Recognition",
        "issue": "Difficulty identifying name",
        "suggestion": "Clearly state your full name at the beginning",
        "impact": "medium",
    },
    "contact_extraction": {
        "component": "Contact Information",
        "issue": "Missing or unclear contact details",
        "suggestion": "Spell out email address and phone number clearly",
        "impact": "high",
    },
    "skills_categorization": {
        "component": "Skills",
        "issue": "Difficulty categorizing skills",
        "suggestion": "Mention specific technologies and tools by name",
        "impact": "medium",
    },
    "experience_level_inference": {
        "component": "Experience Level",
        "issue": "Unclear experience indicators",
        "suggestion": "Mention years of experience and role levels explicitly",
        "impact": "medium",
    },
    "entity_recognition": {
        "component": "Organizations and Places",
        "issue": "Employers, schools or locations were hard to recognize",
        "suggestion": "Name your employers, schools and cities explicitly",
        "impact": "low",
    },
    "overall_completeness": {
        "component": "Completeness",
        "issue": "Key resume fields are missing",
        "suggestion": "Cover contact details, skills, experience and education",
        "impact": "medium",
    },
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def confidence_level(score: int) -> str:
    for minimum, label in CONFIDENCE_LEVELS:
        if score >= minimum:
            return label
    return CONFIDENCE_LEVELS[-1][1]


def is_valid_phone(phone: str) -> bool:
    digits = re.sub(r"\D", "", phone)
    return 7 <= len(digits) <= 15


# ==================== 分项得分 ====================

def transcription_score(transcription: Optional[TranscriptionPayload]) -> Optional[int]:
    if transcription is None:
        return None
    return TRANSCRIPTION_QUALITY_SCORES[transcription.quality.score]


def name_score(parsed: ParsedPayload) -> int:
    """姓名与实体识别中的人名交叉验证"""
    if not parsed.name:
        return 0

    enhancement = parsed.ai_enhancement
    if enhancement is None or enhancement.entities is None:
        return 70

    name = parsed.name.lower()
    for person in enhancement.entities.persons:
        person_text = person.text.lower()
        if person_text in name or name in person_text:
            return round_half_up(person.score * 100)

    return 60


def contact_score(parsed: ParsedPayload) -> int:
    score = 100

    if not parsed.email:
        score -= CONTACT_PENALTIES["missing_email"]
    elif not is_valid_email(parsed.email):
        score -= CONTACT_PENALTIES["invalid_email"]

    if not parsed.phone:
        score -= CONTACT_PENALTIES["missing_phone"]
    elif not is_valid_phone(parsed.phone):
        score -= CONTACT_PENALTIES["invalid_phone"]

    return max(0, score)


def skills_score(parsed: ParsedPayload) -> int:
    """每个技能取最高类别得分，再求平均"""
    enhancement = parsed.ai_enhancement
    if enhancement is None or not enhancement.categorized_skills:
        return 50 if parsed.skills else 0

    top_scores = [
        max(category.score for category in item.categories)
        for item in enhancement.categorized_skills
        if item.categories
    ]
    if not top_scores:
        return 0
    return round_half_up(sum(top_scores) / len(top_scores) * 100)


def experience_score(parsed: ParsedPayload) -> Optional[int]:
    """原始置信度 0-1 映射到 40-100，低置信度的推断仍有参考价值"""
    enhancement = parsed.ai_enhancement
    if enhancement is None or enhancement.experience_level_confidence is None:
        return None
    return round_half_up(40 + 60 * enhancement.experience_level_confidence)


def entity_score(parsed: ParsedPayload) -> Optional[int]:
    enhancement = parsed.ai_enhancement
    if enhancement is None or enhancement.entities is None:
        return None

    mentions = enhancement.entities.all_mentions()
    if not mentions:
        return 50
    return round_half_up(sum(m.score for m in mentions) / len(mentions) * 100)


def completeness_score(parsed: ParsedPayload) -> Optional[int]:
    enhancement = parsed.ai_enhancement
    if enhancement is None or enhancement.completeness is None:
        return None
    return enhancement.completeness.score


class ConfidenceService:
    """置信度聚合器"""

    def component_scores(
        self,
        parsed: ParsedPayload,
        transcription: Optional[TranscriptionPayload] = None
    ) -> ComponentScores:
        return ComponentScores(
            transcription_quality=transcription_score(transcription),
            name_extraction=name_score(parsed),
            contact_extraction=contact_score(parsed),
            skills_categorization=skills_score(parsed),
            experience_level_inference=experience_score(parsed),
            entity_recognition=entity_score(parsed),
            overall_completeness=completeness_score(parsed)
        )

    def aggregate(self, scores: ComponentScores) -> ConfidenceSummary:
        """
        加权平均（只在非 None 分项上重新归一化），四舍五入到整数

        所有分项都为 None 时总分为 0
        """
        values = scores.model_dump()
        weighted_sum = 0.0
        total_weight = 0.0

        for component, weight in COMPONENT_WEIGHTS.items():
            score = values.get(component)
            if score is not None:
                weighted_sum += score * weight
                total_weight += weight

        overall = round_half_up(weighted_sum / total_weight) if total_weight > 0 else 0

        return ConfidenceSummary(
            overall_score=overall,
            level=confidence_level(overall),
            component_scores=scores,
            insights=self.generate_insights(values, overall),
            recommendations=self.generate_recommendations(values),
            timestamp=utc_now()
        )

    def calculate(
        self,
        parsed: ParsedPayload,
        transcription: Optional[TranscriptionPayload] = None
    ) -> ConfidenceSummary:
        summary = self.aggregate(self.component_scores(parsed, transcription))
        logger.info("[ConfidenceService] Overall confidence %s (%s)", summary.overall_score, summary.level)
        return summary

    # ==================== 解读与建议 ====================

    def generate_insights(self, scores: Dict[str, Optional[int]], overall: int) -> List[str]:
        insights = []

        if overall >= 80:
            insights.append(
                "The AI analysis of this resume is highly reliable. "
                "All major components were processed with high confidence."
            )
        elif overall >= 60:
            insights.append(
                "The AI analysis is generally reliable, though some components "
                "showed moderate confidence levels."
            )
        else:
            insights.append("The AI analysis has lower confidence. Manual review is recommended for accuracy.")

        def below(component: str, threshold: int) -> bool:
            value = scores.get(component)
            return value is not None and value < threshold

        if below("transcription_quality", 60):
            insights.append(
                "Audio quality issues may have affected transcription accuracy. "
                "Consider re-recording in a quieter environment."
            )
        if below("name_extraction", 70):
            insights.append("The AI had some difficulty identifying the candidate's name with high confidence.")
        if below("contact_extraction", 70):
            insights.append("Contact details are missing or could not be validated.")
        if below("skills_categorization", 60):
            insights.append("Skills could not be reliably grouped into technical categories.")
        if below("experience_level_inference", 50):
            insights.append(
                "Experience level inference has low confidence. "
                "The resume may lack clear experience indicators."
            )
        if below("entity_recognition", 60):
            insights.append("Few organizations or locations were recognized with confidence.")
        if below("overall_completeness", 60):
            insights.append("Several key resume fields are missing.")

        return insights

    def generate_recommendations(self, scores: Dict[str, Optional[int]]) -> List[ConfidenceRecommendation]:
        """低于 70 的分项按得分从低到高排序，最多 3 条"""
        weak = sorted(
            (
                (score, component)
                for component, score in scores.items()
                if score is not None and score < RECOMMENDATION_THRESHOLD
            ),
            key=lambda item: item[0]
        )

        return [
            ConfidenceRecommendation(**RECOMMENDATIONS[component])
            for _, component in weak[:MAX_RECOMMENDATIONS]
        ]
