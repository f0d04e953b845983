"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ticketdesk.ai import AiProviderFactory
from ticketdesk.classifier import RuleBasedClassifier
from ticketdesk.config import AppConfig
from ticketdesk.database import DatabaseTicketSource, MockDatabaseSource
from ticketdesk.dispatch import BulkDispatcher
from ticketdesk.gateway import GmailGateway, GuardedMailGateway, MailGateway, MockMailGateway
from ticketdesk.oracle import ClassificationOracle, LlmClassificationOracle, RuleBasedOracle
from ticketdesk.services import (
    CustomerService,
    DatabaseQueueService,
    DeskState,
    DispatchService,
    InboxService,
    SettingsService,
    StatsService,
    TemplateService,
    TriageService,
)
from ticketdesk.storage.sqlite_store import SqliteStore
from ticketdesk.triage import TriageEngine


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for TicketDesk.

    Importance: Simplifies passing dependencies to CLI or API layers.
    Alternatives: Use a dependency injection container.
    """

    inbox: InboxService
    triage: TriageService
    dispatch: DispatchService
    customers: CustomerService
    stats: StatsService
    templates: TemplateService
    settings: SettingsService
    database: DatabaseQueueService
    state: DeskState
    store: SqliteStore
    config: AppConfig


def build_oracle(config: AppConfig) -> ClassificationOracle:
    """Summary: Select the classification oracle from configuration.

    Importance: The mock provider runs fully offline with keyword rules.
    Alternatives: Always require an LLM provider.
    """

    if config.oracle_provider == "mock":
        return RuleBasedOracle(RuleBasedClassifier())
    provider = AiProviderFactory(config).build()
    return LlmClassificationOracle(provider, config.oracle_provider)


def build_gateway(config: AppConfig, access_token: str | None = None) -> MailGateway:
    """Summary: Select the mail gateway from configuration."""

    if config.mail_provider == "mock":
        return MockMailGateway(Path(config.mail_fixture_path))
    if config.mail_provider == "gmail":
        token = access_token or config.gmail_access_token
        if not token:
            raise ValueError("GMAIL_ACCESS_TOKEN is required for gmail provider")
        return GmailGateway(token, config.gmail_base_url)
    raise ValueError(f"Unknown mail provider: {config.mail_provider}")


def build_database_source(config: AppConfig) -> DatabaseTicketSource:
    return MockDatabaseSource(Path(config.database_fixture_path))


def build_services(
    config: AppConfig,
    oracle: ClassificationOracle | None = None,
    gateway: MailGateway | None = None,
    database_source: DatabaseTicketSource | None = None,
) -> AppServices:
    """Summary: Construct services from config, restoring the stored snapshot.

    Importance: Tests inject oracle and gateway doubles through the same path.
    Alternatives: Use global singletons for shared dependencies.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    state = DeskState.from_snapshot(store.load_snapshot(), config.active_model)
    oracle = oracle or build_oracle(config)
    guarded = GuardedMailGateway(gateway or build_gateway(config))
    engine = TriageEngine(oracle)
    dispatcher = BulkDispatcher(engine, guarded, state.tickets)
    return AppServices(
        inbox=InboxService(
            state=state, store=store, gateway=guarded, fetch_limit=config.fetch_limit
        ),
        triage=TriageService(
            state=state,
            store=store,
            engine=engine,
            dispatcher=dispatcher,
            oracle=oracle,
            gateway=guarded,
        ),
        dispatch=DispatchService(state=state, store=store, dispatcher=dispatcher),
        customers=CustomerService(state=state, store=store),
        stats=StatsService(state=state),
        templates=TemplateService(state=state, store=store),
        settings=SettingsService(state=state, store=store),
        database=DatabaseQueueService(
            state=state,
            store=store,
            source=database_source or build_database_source(config),
            oracle=oracle,
        ),
        state=state,
        store=store,
        config=config,
    )
