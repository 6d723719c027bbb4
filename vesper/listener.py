"""Progress callbacks emitted while the protocol runs."""

from __future__ import annotations

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class ProgressListener:
    """Observer notified synchronously at each step boundary.

    Every callback is a no-op; subclasses override the ones they need.
    """

    def on_step_started(self, step_id: int, name: str) -> None:
        pass

    def on_step_completed(
        self,
        step_id: int,
        name: str,
        details: Optional[str] = None,
        link_url: Optional[str] = None,
    ) -> None:
        pass

    def on_step_skipped(self, step_id: int, name: str, reason: str) -> None:
        pass

    def on_error(self, step_id: int, message: str) -> None:
        pass

    def on_questions_ready(self, questions: List[str]) -> None:
        pass

    def on_analysis_feedback(self, message: str) -> None:
        pass

    def on_complete(self, diary_doc_id: Optional[str], diary_url: Optional[str]) -> None:
        pass


class LoggingProgressListener(ProgressListener):
    """Render progress to the log."""

    def on_step_started(self, step_id: int, name: str) -> None:
        logger.info(f"[{step_id:>2}] {name}: started")

    def on_step_completed(
        self,
        step_id: int,
        name: str,
        details: Optional[str] = None,
        link_url: Optional[str] = None,
    ) -> None:
        suffix = f" ({link_url})" if link_url else ""
        logger.info(f"[{step_id:>2}] {name}: {details or 'done'}{suffix}")

    def on_step_skipped(self, step_id: int, name: str, reason: str) -> None:
        logger.info(f"[{step_id:>2}] {name}: skipped - {reason}")

    def on_error(self, step_id: int, message: str) -> None:
        logger.error(f"[{step_id:>2}] error: {message}")

    def on_questions_ready(self, questions: List[str]) -> None:
        for number, question in enumerate(questions, 1):
            logger.info(f"Q{number}: {question}")

    def on_analysis_feedback(self, message: str) -> None:
        logger.warning(f"Feedback: {message}")

    def on_complete(self, diary_doc_id: Optional[str], diary_url: Optional[str]) -> None:
        logger.info(f"Nightly protocol finished. Diary: {diary_url or 'not created'}")
