"""
Assessment Engine: adaptive business interview and diagnostic synthesis.

A respondent answers a four-block questionnaire (context, expertise,
deep-dive, risk-scan). The engine decides what to ask next, detects the
respondent's area of expertise, picks three risk areas to probe, tracks
completeness, and finally synthesizes a structured diagnostic with help
from a language model.

Usage:
    from assessment.config import load_settings
    from assessment.engine import InterviewEngine

    engine = InterviewEngine(load_settings(), model_router=model_router)
    session_id = engine.create_session({"source": "landing-page"})
    step = await engine.next_question(session_id)
"""

__version__ = "0.4.0"
