"""
Demo Mode Controller - Deterministic Behavior for Presentations

- Serves fixed recommendations and counselor replies without a provider key
- Lets the HTTP surface run offline
"""

import asyncio
import logging
import os
from typing import List

from ..models import RecommendationList, RecommendationRequest, SchoolRecommendation
from .gemini_gateway import RecommendationGateway

logger = logging.getLogger(__name__)

DEMO_RECOMMENDATIONS = [
    {
        "institutionName": "University of Cape Town",
        "institutionType": "University",
        "website": "https://www.uct.ac.za",
        "recommendedCourses": [
            {
                "courseName": "Bachelor of Science in Computer Science",
                "apsScore": 42,
                "requirements": [
                    {"subject": "Mathematics", "minimumMark": 70},
                    {"subject": "Physical Sciences", "minimumMark": 60},
                ],
            },
        ],
    },
    {
        "institutionName": "Cape Peninsula University of Technology",
        "institutionType": "University",
        "website": "https://www.cput.ac.za",
        "recommendedCourses": [
            {
                "courseName": "Diploma in Information and Communication Technology",
                "apsScore": 28,
                "requirements": [
                    {"subject": "Mathematics", "minimumMark": 50},
                    {"subject": "English", "minimumMark": 50},
                ],
            },
        ],
    },
    {
        "institutionName": "False Bay TVET College",
        "institutionType": "TVET College",
        "website": "https://www.falsebaycollege.co.za",
        "recommendedCourses": [
            {
                "courseName": "National Certificate (Vocational): Information Technology",
                "requirements": [
                    {"subject": "Mathematics", "minimumMark": 40},
                ],
            },
        ],
    },
]


class DemoMode:
    """Global demo mode switch"""

    _enabled = None

    @classmethod
    def is_enabled(cls) -> bool:
        """Check if demo mode is active"""
        if cls._enabled is None:
            cls._enabled = os.getenv("DEMO_MODE", "false").lower() == "true"
            if cls._enabled:
                logger.info("🎬 Demo mode activated - using deterministic gateway")
        return cls._enabled

    @classmethod
    def response_delay_s(cls) -> float:
        """DEMO_RESPONSE_DELAY in milliseconds, fractions allowed"""
        return float(os.getenv("DEMO_RESPONSE_DELAY", "0")) / 1000


class DemoGateway(RecommendationGateway):
    """Deterministic stand-in for the provider"""

    async def get_recommendations(self, request: RecommendationRequest) -> List[SchoolRecommendation]:
        await asyncio.sleep(DemoMode.response_delay_s())
        logger.info(f"🎬 Demo recommendations for {len(request.subject_marks)} subjects")
        return list(RecommendationList.model_validate(DEMO_RECOMMENDATIONS).root)

    async def send_message(self, text: str) -> str:
        await asyncio.sleep(DemoMode.response_delay_s())
        return (
            f"Thanks for your question about \"{text}\".\n"
            "Start by checking the admission requirements on each institution's official website.\n"
            "Your Mathematics and English marks usually matter most for APS calculations."
        )
