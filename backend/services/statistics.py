"""Aggregate results for finished tests"""

import asyncio
import logging
import math
from typing import List

from core.errors import NotFoundError
from database.repository import QuizRepository

logger = logging.getLogger(__name__)

PIE_CHART_SIZE = 20
BAR_CHART_SIZE = 30
TIMELINE_SAMPLES = 50


def build_timeline(responses: List[dict]) -> dict:
    """Cumulative count of unique words over time, sampled to at most 50 points plus the last."""
    if not responses:
        return {"times": [], "values": []}

    seen = set()
    timeline = []
    for response in responses:
        seen.add(response["word"].lower())
        timeline.append((response["created_at"], len(seen)))

    step = max(1, math.ceil(len(timeline) / TIMELINE_SAMPLES))
    sampled = timeline[::step]
    if sampled[-1] is not timeline[-1]:
        sampled.append(timeline[-1])

    return {
        "times": [time.isoformat() if time else None for time, _ in sampled],
        "values": [value for _, value in sampled],
    }


async def build_chart_data(repository: QuizRepository, test_id: int) -> dict:
    """
    Statistics and chart series for one test.

    The four headline figures are independent reads and are fetched
    concurrently.
    """
    test, user_count, total_words, unique_words = await asyncio.gather(
        repository.get_test(test_id),
        repository.count_test_users(test_id),
        repository.count_test_words(test_id),
        repository.count_unique_words(test_id),
    )
    if test is None:
        raise NotFoundError("test_not_found")

    frequency, responses = await asyncio.gather(
        repository.get_word_frequency(test_id),
        repository.get_test_responses(test_id),
    )

    logger.info(f"📊 Chart data for test {test_id}: {user_count} users, {total_words} words")
    test_date = test.started_at or test.created_at
    return {
        "statistics": {
            "testId": test.id,
            "testWord": test.word,
            "testStatus": test.status,
            "testDate": test_date.isoformat() if test_date else None,
            "userCount": user_count,
            "totalWords": total_words,
            "uniqueWords": unique_words,
            # Halves round up: 5 words over 2 users reads as 3.
            "averageWordsPerUser": int(total_words / user_count + 0.5) if user_count else 0,
        },
        "pieChartData": [{"name": item["word"], "value": item["count"]} for item in frequency[:PIE_CHART_SIZE]],
        "barChartData": {
            "categories": [item["word"] for item in frequency[:BAR_CHART_SIZE]],
            "values": [item["count"] for item in frequency[:BAR_CHART_SIZE]],
        },
        "wordCloudData": [{"text": item["word"], "weight": item["count"]} for item in frequency],
        "lineChartData": build_timeline(responses),
        "wordFrequency": frequency,
    }


async def latest_chart_data(repository: QuizRepository) -> dict:
    test = await repository.get_latest_finished_test()
    if test is None:
        raise NotFoundError("no_finished_test")
    return await build_chart_data(repository, test.id)
