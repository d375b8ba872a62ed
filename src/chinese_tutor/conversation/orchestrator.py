"""Client-side exchange loop tying transport, assessment and persistence."""

from collections.abc import Callable
from datetime import date

import httpx
import structlog
from pydantic import BaseModel, Field

from chinese_tutor.assessment.proficiency import ProficiencyAssessor
from chinese_tutor.assessment.recommendations import recommend
from chinese_tutor.config import AssessmentThresholds, Settings
from chinese_tutor.conversation.progress import PracticeStreak, VocabularySet
from chinese_tutor.conversation.sanitize import MAX_MESSAGE_LENGTH, check_message
from chinese_tutor.conversation.topics import TopicTracker
from chinese_tutor.errors import TutorError, UpstreamServiceError, ValidationError
from chinese_tutor.models.exchange import Exchange
from chinese_tutor.models.proficiency import (
    LessonRecommendation,
    OutcomeCounters,
    ProficiencyProfile,
)
from chinese_tutor.storage.backends import JsonFileBackend
from chinese_tutor.storage.debounce import Debouncer
from chinese_tutor.storage.quota_store import (
    MAX_HISTORY_MESSAGES,
    MAX_MESSAGES_STORED,
    QuotaSafeStore,
    truncate,
)
from chinese_tutor.storage.snapshot import SnapshotRepository
from chinese_tutor.transport.retry import DEFAULT_RETRYABLE_STATUSES, ResilientTransport, RetryOptions

logger = structlog.get_logger()

DEBOUNCE_SECONDS = 1.0

# The gate's 429 must stop traffic, so the client never retries it
CLIENT_RETRY_OPTIONS = RetryOptions(retryable_statuses=DEFAULT_RETRYABLE_STATUSES - {429})


class ExchangeOutcome(BaseModel):
    """Result of one ``send``: the tutor reply or a message explaining the failure."""

    ok: bool
    message: str
    error: str | None = None
    exchange: Exchange | None = None
    profile: ProficiencyProfile | None = None
    topics: list[str] = Field(default_factory=list)
    recommendations: list[LessonRecommendation] = Field(default_factory=list)


class ExchangeOrchestrator:
    """Runs one learner exchange at a time against the completion endpoint.

    A successful reply is appended to history and fed to the vocabulary set,
    topic tracker and proficiency assessor; recommendations are refreshed
    whenever a new profile is assessed. Writes are debounced.

    Args:
        transport: Retrying HTTP transport.
        endpoint_url: URL of the ``/api/chat`` endpoint.
        repository: Snapshot persistence.
        retry_options: Retry policy for the endpoint call.
        thresholds: Assessment thresholds.
        max_message_length: Longest accepted learner message.
        max_history_messages: Exchanges sent along with each request.
        max_messages_stored: Exchanges kept in local history.
        debounce_seconds: Quiet period before state is written.
        today: Source of the current date for the practice streak.
    """

    def __init__(
        self,
        transport: ResilientTransport,
        endpoint_url: str,
        repository: SnapshotRepository,
        retry_options: RetryOptions = CLIENT_RETRY_OPTIONS,
        thresholds: AssessmentThresholds | None = None,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
        max_messages_stored: int = MAX_MESSAGES_STORED,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        today: Callable[[], date] = date.today,
    ):
        self.transport = transport
        self.endpoint_url = endpoint_url
        self.repository = repository
        self.retry_options = retry_options
        self.max_message_length = max_message_length
        self.max_history_messages = max_history_messages
        self.max_messages_stored = max_messages_stored
        self._today = today

        self.history: list[Exchange] = []
        self.vocabulary = VocabularySet()
        self.streak = PracticeStreak()
        self.recommendations: list[LessonRecommendation] = []
        self.assessor = ProficiencyAssessor(
            thresholds=thresholds, vocabulary_size=lambda: len(self.vocabulary)
        )
        self.assessor.on_profile_update(self._on_profile_update)

        self._save_history = Debouncer(repository.save_history, debounce_seconds)
        self._save_vocabulary = Debouncer(repository.save_vocabulary, debounce_seconds)
        self._save_topics = Debouncer(repository.save_topics, debounce_seconds)
        self._save_profile = Debouncer(repository.save_profile, debounce_seconds)
        self._save_counters = Debouncer(repository.save_counters, debounce_seconds)
        self._save_streak = Debouncer(repository.save_streak, debounce_seconds)
        self.topics = TopicTracker(persist=self._save_topics)

        self._busy = False

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient, endpoint_url: str
    ) -> "ExchangeOrchestrator":
        """Wire an orchestrator with file-backed storage under ``settings.storage_dir``."""
        store = QuotaSafeStore(
            JsonFileBackend(settings.storage_dir), quota_mb=settings.storage_quota_mb
        )
        retry_options = RetryOptions(
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
            retryable_statuses=CLIENT_RETRY_OPTIONS.retryable_statuses,
        )
        return cls(
            transport=ResilientTransport(client, retry_options),
            endpoint_url=endpoint_url,
            repository=SnapshotRepository(store),
            retry_options=retry_options,
            thresholds=settings.assessment,
            max_message_length=settings.max_message_length,
            max_history_messages=settings.max_history_messages,
            max_messages_stored=settings.max_messages_stored,
            debounce_seconds=settings.debounce_seconds,
        )

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def profile(self) -> ProficiencyProfile | None:
        return self.assessor.profile

    def _debouncers(self) -> list[Debouncer]:
        return [
            self._save_history,
            self._save_vocabulary,
            self._save_topics,
            self._save_profile,
            self._save_counters,
            self._save_streak,
        ]

    def load(self) -> None:
        """Restore state from the snapshot store."""
        repo = self.repository
        self.history = truncate(repo.load_history(), self.max_messages_stored)
        self.vocabulary = VocabularySet(repo.load_vocabulary())
        count, last_practice = repo.load_streak()
        self.streak = PracticeStreak(count, last_practice)
        self.topics = TopicTracker(repo.load_topics(), persist=self._save_topics)

        profile = repo.load_profile()
        self.assessor.restore(repo.load_counters(), profile)
        self.recommendations = recommend(profile) if profile else []
        logger.info(
            "state_loaded",
            history=len(self.history),
            vocabulary=len(self.vocabulary),
            tier=profile.tier.value if profile else None,
        )

    def _on_profile_update(self, profile: ProficiencyProfile, counters: OutcomeCounters) -> None:
        self.recommendations = recommend(profile)
        self._save_profile(profile)

    def _outcome(self, ok: bool, message: str, error: str | None = None,
                 exchange: Exchange | None = None) -> ExchangeOutcome:
        return ExchangeOutcome(
            ok=ok,
            message=message,
            error=error,
            exchange=exchange,
            profile=self.profile,
            topics=self.topics.topics,
            recommendations=list(self.recommendations),
        )

    async def send(self, text: str) -> ExchangeOutcome | None:
        """Send one learner message. Returns None while another send is in flight."""
        if self._busy:
            logger.debug("send_ignored_busy")
            return None

        try:
            message = check_message(text, self.max_message_length)
        except ValidationError as e:
            logger.info("message_rejected", reason=e.detail)
            return self._outcome(False, e.user_message, error=type(e).__name__)

        self._busy = True
        try:
            reply = await self._request(message)
        except TutorError as e:
            logger.warning("exchange_failed", error=type(e).__name__, detail=e.detail)
            return self._outcome(False, e.user_message, error=type(e).__name__)
        finally:
            self._busy = False

        exchange = self._apply(message, reply)
        return self._outcome(True, reply, exchange=exchange)

    async def _request(self, message: str) -> str:
        recent = truncate(self.history, self.max_history_messages)
        request = self.transport.client.build_request(
            "POST",
            self.endpoint_url,
            json={
                "message": message,
                "history": [e.model_dump(mode="json") for e in recent],
            },
        )
        data = await self.transport.send_json(request, self.retry_options)
        if isinstance(data.get("error"), str):
            raise UpstreamServiceError(data["error"])
        reply = data.get("response")
        if not isinstance(reply, str) or not reply.strip():
            raise UpstreamServiceError("reply has no response text")
        return reply

    def _apply(self, message: str, reply: str) -> Exchange:
        exchange = Exchange(user_text=message, ai_text=reply)
        self.history = truncate([*self.history, exchange], self.max_messages_stored)
        self._save_history(list(self.history))

        if self.vocabulary.harvest(reply):
            self._save_vocabulary(self.vocabulary.words)

        self.topics.observe(f"{message}\n{reply}")
        self.assessor.record(message, reply)
        self._save_counters(self.assessor.counters)

        if self.streak.mark(self._today()):
            self._save_streak(self.streak.count, self.streak.last_practice)
        return exchange

    def reset(self) -> None:
        """Clear the conversation; learned vocabulary and streak are kept."""
        self._save_history.cancel()
        self.history = []
        self.repository.clear_history()
        logger.info("conversation_reset", vocabulary=len(self.vocabulary))

    def flush(self) -> None:
        """Write any pending debounced state immediately."""
        for debouncer in self._debouncers():
            debouncer.flush()
