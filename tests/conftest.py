import pytest

from quotepro.services.workflow_service import WorkflowService


@pytest.fixture
def workflow(tmp_path):
    return WorkflowService(tmp_path / "data")


@pytest.fixture
def quotes(workflow):
    return workflow.quotes


@pytest.fixture
def invoices(workflow):
    return workflow.invoices


@pytest.fixture
def client():
    return {
        "name": "Thandi Nkosi",
        "address": "12 Long Street, Cape Town",
        "email": "thandi@nkosi.co.za",
        "company": "Nkosi Trading",
    }


@pytest.fixture
def consulting():
    return [{"description": "Consulting", "quantity": 2, "unit_price": 100}]
