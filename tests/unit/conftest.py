"""Shared test fixtures."""

from pathlib import Path

import pytest

from flowstate.core.state import DocumentState
from flowstate.storage.model_store import ModelStore
from tests.unit.fakes import FakeBackend, FakeScheduler

SAMPLE_MODEL = """\
schema_version: "1.0"
name: Payments
description: Card payment flow
participants: [alice, bob]

assets:
  - ref: A01
    name: Card data

components:
  - ref: web
    name: Web App
    component_type: internal
    assets: [A01]
    x: 100
    y: 100

  - ref: api
    name: API
    component_type: internal
    x: 400
    y: 100

  - ref: db
    name: Database
    component_type: data_store
    assets: [A01]
    x: 400
    y: 400

data_flows:
  - ref: web->api
    source: web
    destination: api
    source_point: right-1
    destination_point: left-1
    direction: unidirectional
    label: DF1

  - ref: api->db
    source: api
    destination: db
    direction: unidirectional
    label: DF2

boundaries:
  - ref: boundary-1
    name: Internal
    components: [api, db]
    x: 350
    y: 50
    width: 300
    height: 500

threats:
  - ref: T01
    name: Injection
    affected_components: [api, db]
    affected_data_flows: [web->api, api->db]
    affected_assets: [A01]
    status: Mitigate

controls:
  - ref: C01
    name: Parameterized queries
    mitigates: [T01]
    implemented_in: [api]
    status: Done
"""


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_MODEL


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def state(scheduler: FakeScheduler) -> DocumentState:
    """Return a document state over the sample model with a virtual clock."""
    return DocumentState(SAMPLE_MODEL, scheduler=scheduler)


@pytest.fixture
def backend(scheduler: FakeScheduler) -> FakeBackend:
    return FakeBackend(scheduler)


@pytest.fixture
def store(tmp_path: Path) -> ModelStore:
    return ModelStore(tmp_path / "flowstate.db")


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "payments.yaml"
    path.write_text(SAMPLE_MODEL, encoding="utf-8")
    return path
