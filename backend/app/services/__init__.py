"""Service wiring - one instance of each collaborator per process."""

from dataclasses import dataclass
from typing import Any, Optional

from app.config import Settings


@dataclass
class Services:
    settings: Settings
    sessions: Any
    objects: Any
    orchestrator: Any
    submission: Any
    auth: Any
    database: Optional[Any] = None

    def close(self):
        if self.database is not None:
            self.database.close()


def build_services(settings: Settings) -> Services:
    """Create the production object graph from one Settings instance."""
    from app.database import Database
    from app.services.auth import SessionTokenAuth
    from app.services.extraction import VisionTextExtractor
    from app.services.grading import GeminiGrader
    from app.services.object_store import ObjectStore
    from app.services.orchestrator import GradingOrchestrator
    from app.services.session_store import SessionStore
    from app.services.submission import SubmissionFlow

    database = Database(settings)
    sessions = SessionStore(database.db)
    objects = ObjectStore(database.sync_db)
    orchestrator = GradingOrchestrator(
        settings,
        session_store=sessions,
        object_store=objects,
        extractor=VisionTextExtractor(settings),
        grader=GeminiGrader(settings),
    )
    return Services(
        settings=settings,
        sessions=sessions,
        objects=objects,
        orchestrator=orchestrator,
        submission=SubmissionFlow(settings, objects, sessions, orchestrator),
        auth=SessionTokenAuth(database.db),
        database=database,
    )
