from __future__ import annotations

import json
import logging
from typing import List, Optional

import google.generativeai as genai

import config
from models import SECTIONS, StudentResult

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API Key not configured. Please set the API_KEY environment variable."
ERROR_MESSAGE = "An error occurred while generating AI insights. Please check the logs for details."


def build_prompt(results: List[StudentResult]) -> str:
    detailed_results = [
        {
            "studentId": r.student_id,
            "totalScore": r.total_score,
            "sections": r.section_scores,
            "answers": [{"q": a.question, "correct": a.is_correct} for a in r.answers],
        }
        for r in results
    ]
    section_list = ", ".join(f"'{s}'" for s in SECTIONS)

    return f"""
As an expert educational analyst, examine the following OMR test results for a class.
The total possible score is 100. The sections are {section_list}.

Results data (includes individual question correctness):
{json.dumps(detailed_results, indent=2)}

Provide a concise, insightful analysis of the class's performance. Structure your response in Markdown with the following sections:
1.  **Overall Performance Summary:** A brief overview of the average score, and general pass/fail impressions.
2.  **Strengths:** Identify the sections or topics where students performed the best.
3.  **Areas for Improvement:** Pinpoint the sections or topics where students struggled the most.
4.  **Question Analysis:** Identify the top 3 most frequently missed questions. List them and briefly speculate why they might have been difficult.
5.  **Actionable Recommendations:** Suggest 2-3 specific actions instructors could take to address the identified weaknesses.

Keep the analysis professional, data-driven, and easy to understand.
"""


def generate_analytics_insights(
    results: List[StudentResult],
    api_key: Optional[str] = None,
    model_name: str = config.GEMINI_MODEL,
) -> str:
    """Ask Gemini for a Markdown write-up of the class results.

    Never raises: a missing key or a failed call comes back as a message
    suitable for showing in place of the insights.
    """
    api_key = api_key if api_key is not None else config.API_KEY
    if not api_key:
        logger.warning("Gemini API key not found in environment variables.")
        return MISSING_KEY_MESSAGE

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name)
        response = model.generate_content(build_prompt(results))
        return response.text
    except Exception:
        logger.exception("Error generating insights from Gemini")
        return ERROR_MESSAGE
