"""Schema management for the Dispatch domain's relational providers."""

import structlog
from protean.domain import Domain
from sqlalchemy import create_engine

logger = structlog.get_logger(__name__)

_RDBMS_PROVIDERS = ("sqlite", "postgresql")


def _touch_daos(domain: Domain, provider_name: str) -> None:
    """Force every model backed by the provider to register its table.

    Accessing a repository's ``_dao`` builds the SQLAlchemy model, which is
    what puts the table into the provider's metadata.
    """
    records = (
        list(domain.registry.aggregates.values())
        + list(domain.registry.entities.values())
        + list(domain.registry.projections.values())
    )
    for record in records:
        if record.cls.meta_.provider == provider_name:
            domain.repository_for(record.cls)._dao  # noqa: B018

    # Outbox tables are registered as internal
    if hasattr(domain, "_outbox_repos") and provider_name in domain._outbox_repos:
        domain._outbox_repos[provider_name]._dao  # noqa: B018


def _rdbms_providers(domain: Domain):
    for name, provider in domain.providers.items():
        if provider.conn_info["provider"] in _RDBMS_PROVIDERS:
            yield name, provider


def setup_db(domain: Domain):
    """Create tables for orders, stores, rollups and the division board."""
    with domain.domain_context():
        for name, provider in _rdbms_providers(domain):
            _touch_daos(domain, name)
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.create_all(engine)
            logger.info("Dispatch schema created", provider=name)


def drop_db(domain: Domain):
    """Drop every table owned by the Dispatch domain."""
    with domain.domain_context():
        for name, provider in _rdbms_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
            logger.info("Dispatch schema dropped", provider=name)
