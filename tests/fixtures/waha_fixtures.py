"""Fixtures for organizations, WAHA sessions, customers and chat sessions."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.adapters.waha import WahaClient
from app.constants.waha import HealthStatus, SessionStatus
from app.models.agent import Agent
from app.models.bot_personality import BotPersonality
from app.models.chat_session import ChatSession
from app.models.customer import Customer
from app.models.organization import Organization
from app.models.waha_session import WahaSession
from app.services.channel_config_service import ChannelConfigService


def make_organization(db, faker) -> Organization:
    organization = Organization(
        name=faker.company(),
        org_code=faker.unique.bothify(text="ORG-####-????"),
    )
    db.add(organization)
    db.flush()
    ChannelConfigService(db).get_default_channel_config(organization.id)
    db.commit()
    db.refresh(organization)
    return organization


def make_waha_session(db, organization, session_name: str, **overrides) -> WahaSession:
    channel_config = ChannelConfigService(db).get_default_channel_config(organization.id)
    values = dict(
        organization_id=organization.id,
        channel_config_id=channel_config.id,
        session_name=session_name,
        status=SessionStatus.CONNECTING,
        is_authenticated=False,
        is_connected=False,
        health_status=HealthStatus.UNKNOWN,
        error_count=0,
        total_messages_sent=0,
        total_messages_received=0,
        total_media_sent=0,
        total_media_received=0,
    )
    values.update(overrides)
    session = WahaSession(**values)
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


@pytest.fixture(scope="function")
def setup_organization(db, faker):
    """Create an organization with its default WhatsApp channel config."""
    return make_organization(db, faker)


@pytest.fixture(scope="function")
def setup_other_organization(db, faker):
    return make_organization(db, faker)


@pytest.fixture(scope="function")
def setup_waha_session(db, faker, setup_organization):
    """A disconnected WAHA session owned by setup_organization."""
    return make_waha_session(
        db, setup_organization, f"{setup_organization.id}_{faker.word()}_abcd1234"
    )


@pytest.fixture(scope="function")
def setup_connected_waha_session(db, faker, setup_organization):
    return make_waha_session(
        db,
        setup_organization,
        f"{setup_organization.id}_{faker.word()}_live0001",
        status=SessionStatus.WORKING,
        is_connected=True,
        is_authenticated=True,
        health_status=HealthStatus.HEALTHY,
        phone_number="+6281234567890",
    )


@pytest.fixture(scope="function")
def setup_customer(db, faker, setup_organization):
    customer = Customer(
        organization_id=setup_organization.id,
        name=faker.name(),
        phone="6281234567890",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture(scope="function")
def setup_bot_personality(db, faker, setup_organization):
    bot = BotPersonality(
        organization_id=setup_organization.id,
        name=faker.first_name().lower(),
        display_name="Ava",
        status="active",
        is_default=True,
    )
    db.add(bot)
    db.commit()
    db.refresh(bot)
    return bot


@pytest.fixture(scope="function")
def setup_agent(db, faker, setup_organization):
    agent = Agent(
        organization_id=setup_organization.id,
        display_name=faker.name(),
        is_active=True,
    )
    db.add(agent)
    db.commit()
    db.refresh(agent)
    return agent


@pytest.fixture(scope="function")
def setup_chat_session(db, setup_organization, setup_customer):
    """An active chat session for setup_customer without an assigned agent."""
    chat_session = ChatSession(
        organization_id=setup_organization.id,
        customer_id=setup_customer.id,
        is_active=True,
        started_at=datetime.now(timezone.utc),
    )
    db.add(chat_session)
    db.commit()
    db.refresh(chat_session)
    return chat_session


@pytest.fixture(scope="function")
def mock_waha_client():
    """A WahaClient double; configure return values per test."""
    return MagicMock(spec=WahaClient)
