import logging
import os

from core.config import QA_MODE
from grillroom.analysis.judge import ResponseJudge, build_response_judge
from grillroom.session.debouncer import ANALYSIS_QUIET_PERIOD_SEC
from grillroom.session.invites import InviteNotifier, invite_notifier
from grillroom.session.store import LocalSessionStore, SessionStore, build_session_store
from grillroom.topics.catalog import TopicCatalog, topic_catalog

logger = logging.getLogger("grillroom.api.dependencies")

JUDGE_TIMEOUT_SEC = max(1.0, float(os.getenv("JUDGE_TIMEOUT_SEC", "12")))
JUDGE_RETRIES = max(0, int(os.getenv("JUDGE_RETRIES", "1")))

try:
    session_store: SessionStore = build_session_store()
    logger.info("Session store initialized: %s", session_store.__class__.__name__)
except Exception as session_store_exc:
    session_store = LocalSessionStore()
    logger.warning(
        "Session store fallback to LocalSessionStore due to init error: %s",
        session_store_exc,
    )


class DependencyProvider:
    quiet_period_sec: float = ANALYSIS_QUIET_PERIOD_SEC

    def create_judge(self) -> ResponseJudge:
        return build_response_judge(qa_mode=QA_MODE, timeout_sec=JUDGE_TIMEOUT_SEC, retries=JUDGE_RETRIES)

    def get_session_store(self) -> SessionStore:
        return session_store

    def get_invite_notifier(self) -> InviteNotifier:
        return invite_notifier

    def get_topic_catalog(self) -> TopicCatalog:
        return topic_catalog


dependency_provider = DependencyProvider()


def get_provider() -> DependencyProvider:
    return dependency_provider


def set_provider(provider: DependencyProvider) -> DependencyProvider:
    """Swap the provider (tests inject judges, stores and quiet periods)."""
    global dependency_provider
    previous = dependency_provider
    dependency_provider = provider
    return previous
