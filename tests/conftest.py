# tests/conftest.py

import pytest

from deid_pipeline.core.domain import (
    DeidentifyContentResponse,
    Row,
    Table,
    TransformationOverview,
)
from deid_pipeline.engine.base import DeidentifyClient
from deid_pipeline.service.config import DeidentifyTextConfig


class FakeClient(DeidentifyClient):
    """Records every request and upper-cases each cell."""

    def __init__(self, registry, fail_with=None):
        self.registry = registry
        self.fail_with = fail_with
        self.closed = False
        self.requests = []

    def deidentify_content(self, request):
        self.registry.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        rows = tuple(Row(tuple(v.upper() for v in row.values)) for row in request.item.rows)
        return DeidentifyContentResponse(
            item=Table(headers=request.item.headers, rows=rows),
            overview=TransformationOverview(transformed_bytes=0),
        )

    def close(self):
        self.closed = True


class FakeClientFactory:
    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.clients = []
        self.requests = []

    def __call__(self):
        client = FakeClient(self, fail_with=self.fail_with)
        self.clients.append(client)
        return client


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def make_config():
    def _make(**overrides):
        values = {
            "project_id": "test-project",
            "batch_size_bytes": 1000,
            "deidentify_template_name": "replace_with_entity_type",
        }
        values.update(overrides)
        return DeidentifyTextConfig.build(**values)

    return _make
