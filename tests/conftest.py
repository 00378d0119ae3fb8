import pytest

from credmail.core.models import DeliveryMethod, EmailSettings
from fakes import FakeGraph, FakeOpener


@pytest.fixture
def fake_graph():
    return FakeGraph()


@pytest.fixture
def fake_opener():
    return FakeOpener()


@pytest.fixture
def graph_settings():
    return EmailSettings(
        method=DeliveryMethod.GRAPH,
        graph_tenant_id="tenant-1",
        graph_client_id="client-1",
        graph_client_secret="s3cret",
        graph_sender_address="it@contoso.com",
    )


@pytest.fixture
def desktop_settings():
    return EmailSettings(method=DeliveryMethod.DESKTOP)
