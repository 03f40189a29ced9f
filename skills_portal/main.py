"""
Course Portal Skills Engine — Main Entry Point

Run as an API server:
    python -m skills_portal --serve
    # or: uvicorn skills_portal.api:app --reload --port 8000

Without --serve, prints a one-shot summary for a principal:
    python -m skills_portal someone@example.com
"""

from __future__ import annotations

import logging
import sys

from skills_portal.config import get_settings
from skills_portal.models.schemas import Principal
from skills_portal.services.portal import get_portal
from skills_portal.utils.logger import setup_logging


def run(email: str = "") -> dict:
    """Sync course completions for one principal and return their skills summary."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    if not email:
        logger.info("Usage: python -m skills_portal <email> | --serve")
        return {}

    principal = Principal(id=email.lower(), email=email.lower())
    portal = get_portal()

    logger.info("=" * 60)
    logger.info(f"  SKILLS SUMMARY — {principal.email}")
    logger.info(f"  Storage: {settings.storage_backend}")
    logger.info("=" * 60)

    completed = portal.sync_course_completions(principal)
    summary = portal.evidence.summarize(principal)
    matrix = portal.aggregator.compute_matrix(principal)

    logger.info(f"  Categories newly completed: {completed}")
    logger.info(f"  Evidence rows:              {summary.total_skills}")
    for level, count in summary.by_level.items():
        logger.info(f"    {level:<12} {count}")
    for entry in matrix:
        status = "complete" if entry.knowledge_completed else "open"
        used = sum(1 for c in entry.capabilities if c.project_count > 0)
        logger.info(f"  {entry.category.name:<30} {status:<9} {used}/{len(entry.capabilities)} capabilities used")

    return {
        "categories_completed": completed,
        "summary": summary.model_dump(),
        "matrix": [m.model_dump(mode="json") for m in matrix],
    }


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("skills_portal.api:app", host=host, port=port, reload=settings.debug)


if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(sys.argv[1] if len(sys.argv) > 1 else "")
