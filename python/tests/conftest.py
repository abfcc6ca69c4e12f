"""
Pytest configuration and fixtures for SA School Recommender tests
"""

import asyncio
from typing import List, Optional

import pytest

from school_recommender.models import RecommendationList, SchoolRecommendation
from school_recommender.services.gemini_gateway import RecommendationGateway


def make_recommendation(name: str, kind: str = "University", course: str = "BSc Computer Science") -> dict:
    return {
        "institutionName": name,
        "institutionType": kind,
        "website": f"https://www.{name.lower().replace(' ', '')}.ac.za",
        "recommendedCourses": [
            {
                "courseName": course,
                "apsScore": 30,
                "requirements": [{"subject": "Mathematics", "minimumMark": 60}],
            }
        ],
    }


def as_recommendations(raw: List[dict]) -> List[SchoolRecommendation]:
    return list(RecommendationList.model_validate(raw).root)


class FakeGateway(RecommendationGateway):
    """
    Scriptable gateway. Set `hold` to an asyncio.Event to park calls until the
    test releases them; set `error` to make every call raise.
    """

    def __init__(self, recommendations=None, reply: str = "Look at engineering programmes.", error: Optional[Exception] = None):
        self.recommendations = list(recommendations or [])
        self.reply = reply
        self.error = error
        self.hold: Optional[asyncio.Event] = None
        self.requests = []
        self.messages = []
        self.history_resets = 0

    async def _wait(self):
        if self.hold is not None:
            await self.hold.wait()

    async def get_recommendations(self, request):
        self.requests.append(request)
        await self._wait()
        if self.error is not None:
            raise self.error
        return list(self.recommendations)

    async def send_message(self, text):
        self.messages.append(text)
        await self._wait()
        if self.error is not None:
            raise self.error
        return self.reply

    def reset_history(self):
        self.history_resets += 1


@pytest.fixture
def sample_recommendations():
    """Three institutions in a fixed order"""
    return as_recommendations([
        make_recommendation("University of Pretoria"),
        make_recommendation("Tshwane South TVET College", kind="TVET College", course="N4 Engineering Studies"),
        make_recommendation("Eduvos", kind="Private College", course="Diploma in IT"),
    ])


@pytest.fixture
def fake_gateway(sample_recommendations):
    return FakeGateway(recommendations=sample_recommendations)
