# generation/instructions.py
"""
Static system instructions per generation task.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict


class GenerationTask(str, Enum):
    """What the client asked the model to produce."""
    BULLETS = "bullets"
    RESUME = "resume"
    COVER_LETTER = "cover-letter"
    INTERVIEW_QUESTIONS = "interview-questions"
    COMPENSATION_INSIGHTS = "compensation-insights"
    COMPANY_INSIGHTS = "company-insights"


# Tasks whose instructions ask for a JSON document
JSON_TASKS = frozenset({
    GenerationTask.INTERVIEW_QUESTIONS,
    GenerationTask.COMPENSATION_INSIGHTS,
    GenerationTask.COMPANY_INSIGHTS,
})

INSTRUCTIONS: Dict[GenerationTask, str] = {
    GenerationTask.BULLETS: (
        "You write resume bullet points. Read the job description and write "
        "five concise, achievement-oriented bullet points a strong candidate "
        "for this role could put on their resume. Return one bullet per line."
    ),
    GenerationTask.RESUME: (
        "You are a professional resume writer. Using the job description and, "
        "when provided, the candidate's current resume, write a tailored resume "
        "in plain text with sections for summary, experience, skills and education."
    ),
    GenerationTask.COVER_LETTER: (
        "You are a career coach. Write a one-page cover letter for the role in "
        "the job description. If the candidate's resume is provided, draw on it. "
        "Keep a confident, specific tone and avoid cliches."
    ),
    GenerationTask.INTERVIEW_QUESTIONS: (
        "You prepare candidates for interviews. Return a JSON object with a "
        "\"questions\" array; each item has \"question\", \"category\" "
        "(behavioral, technical or role-specific) and \"tip\". Return only JSON."
    ),
    GenerationTask.COMPENSATION_INSIGHTS: (
        "You are a compensation analyst. From the job description, estimate the "
        "role's level and pay. Return a JSON object with \"level\", "
        "\"base_salary_range\", \"total_compensation_range\", \"currency\" and "
        "\"negotiation_tips\". Return only JSON."
    ),
    GenerationTask.COMPANY_INSIGHTS: (
        "You research employers. From the job description, summarize what can be "
        "inferred about the company. Return a JSON object with \"company\", "
        "\"industry\", \"culture_signals\", \"growth_stage\" and "
        "\"questions_to_ask\". Return only JSON."
    ),
}


def get_instruction(task: GenerationTask) -> str:
    return INSTRUCTIONS[task]


def build_user_content(job_description: str, resume: str | None = None) -> str:
    """Combine the job description and optional resume into one message."""
    if not resume:
        return job_description
    return f"Job description:\n{job_description}\n\nCurrent resume:\n{resume}"
