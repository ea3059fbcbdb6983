import pytest

from quotepro.errors import NotFound, ValidationError
from quotepro.models.quote import ClientDetails


@pytest.fixture
def customers(workflow):
    return workflow.customers


@pytest.fixture
def thandi(customers, client):
    return customers.add_customer(client)


def test_add_and_get(customers, thandi):
    assert customers.get_customer(thandi.id).email == "thandi@nkosi.co.za"
    assert [c.name for c in customers.list_customers()] == ["Thandi Nkosi"]


def test_missing_customer(customers):
    with pytest.raises(NotFound):
        customers.get_customer("nope")
    assert customers.get_by_id("nope") is None


def test_invalid_customer_refused(customers):
    with pytest.raises(ValidationError):
        customers.add_customer({"name": "X", "address": "Y", "email": "not-an-email"})
    with pytest.raises(ValidationError):
        customers.add_customer({"name": " ", "address": "Y", "email": "x@y.co.za"})
    assert customers.list_customers() == []


def test_update_keeps_identity(customers, thandi):
    updated = customers.update_customer(thandi.id, phone="021 555 0101")
    assert updated.id == thandi.id
    assert updated.created_at == thandi.created_at
    assert updated.updated_at > thandi.updated_at
    assert customers.get_customer(thandi.id).phone == "021 555 0101"


def test_delete(customers, thandi):
    assert customers.delete_customer(thandi.id) is True
    assert customers.delete_customer(thandi.id) is False


def test_search_by_name_email_or_company(customers, thandi):
    customers.add_customer({"name": "Pieter Botha", "address": "1 Main Rd", "email": "pieter@botha.com"})
    assert [c.name for c in customers.search_customers("thandi")] == ["Thandi Nkosi"]
    assert [c.name for c in customers.search_customers("BOTHA.COM")] == ["Pieter Botha"]
    assert [c.name for c in customers.search_customers("trading")] == ["Thandi Nkosi"]
    assert customers.search_customers("t") == []


def test_search_limit(customers):
    for n in range(5):
        customers.add_customer({"name": f"Client {n}", "address": "A", "email": f"c{n}@x.co.za"})
    assert len(customers.search_customers("client", limit=3)) == 3


def test_client_details_from_customer(customers, thandi):
    details = customers.client_details(thandi.id)
    assert isinstance(details, ClientDetails)
    assert details.name == "Thandi Nkosi"
    assert details.company == "Nkosi Trading"


def test_quote_for_customer_is_a_snapshot(workflow, thandi, consulting):
    q = workflow.quote_for_customer(thandi.id, consulting)
    assert q.customer_id == thandi.id
    assert q.client_details.address == "12 Long Street, Cape Town"
    workflow.customers.update_customer(thandi.id, address="99 New Road")
    assert workflow.quotes.get_quote(q.id).client_details.address == "12 Long Street, Cape Town"


def test_invoice_keeps_customer_link(workflow, thandi, consulting):
    q = workflow.quote_for_customer(thandi.id, consulting)
    workflow.approve(q.id)
    _, inv = workflow.convert_quote(q.id)
    assert inv.customer_id == thandi.id
