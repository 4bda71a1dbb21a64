import pytest

from deid_pipeline.core.domain import Record, Row
from deid_pipeline.core.exceptions import RemoteCallError, ShapingError
from deid_pipeline.engine.http_client import HttpDeidentifyClient
from deid_pipeline.engine.presidio_client import PresidioDeidentifyClient
from deid_pipeline.service.config import Settings
from deid_pipeline.service.pipeline import DeidentifyText, default_client_factory


def test_unstructured_records_share_one_call(make_config, client_factory):
    pipeline = DeidentifyText(make_config(), client_factory=client_factory)

    results = list(pipeline.expand([("a.txt", "hello"), ("a.txt", "world")]))

    assert len(results) == 1
    assert results[0].key == "a.txt"
    request = client_factory.requests[0]
    assert request.item.headers.names == ("value",)
    assert [r.values for r in request.item.rows] == [("hello",), ("world",)]


def test_csv_records_are_split_by_header(make_config, client_factory):
    pipeline = DeidentifyText(
        make_config(csv_column_delimiter=","),
        client_factory=client_factory,
        csv_headers=["x", "y"],
    )

    list(pipeline.expand([Record("a.txt", "x1,y1"), Record("a.txt", "x2,y2")]))

    request = client_factory.requests[0]
    assert request.item.headers.names == ("x", "y")
    assert [r.values for r in request.item.rows] == [("x1", "y1"), ("x2", "y2")]


def test_small_budget_splits_batches_in_order(make_config, client_factory):
    pipeline = DeidentifyText(make_config(batch_size_bytes=10), client_factory=client_factory)

    results = list(pipeline.expand([("a.txt", "hello"), ("a.txt", "world")]))

    assert [r.key for r in results] == ["a.txt", "a.txt"]
    assert [req.item.rows for req in client_factory.requests] == [
        (Row(("hello",)),),
        (Row(("world",)),),
    ]


def test_oversized_row_is_sent_alone(make_config, client_factory):
    pipeline = DeidentifyText(make_config(batch_size_bytes=10), client_factory=client_factory)

    results = list(pipeline.expand([("a.txt", "x" * 100)]))

    assert len(results) == 1
    assert client_factory.requests[0].item.rows == (Row(("x" * 100,)),)


def test_results_are_keyed_per_source(make_config, client_factory):
    pipeline = DeidentifyText(make_config(), client_factory=client_factory)

    results = list(
        pipeline.expand([("a.txt", "one"), ("b.txt", "two"), ("a.txt", "three")])
    )

    by_key = {r.key: [row.values[0] for row in r.response.item.rows] for r in results}
    assert by_key == {"a.txt": ["ONE", "THREE"], "b.txt": ["TWO"]}
    assert len(client_factory.clients) == 2
    assert all(client.closed for client in client_factory.clients)


def test_header_side_input_is_resolved_once(make_config, client_factory):
    calls = []

    def headers():
        calls.append(1)
        return ["x", "y"]

    pipeline = DeidentifyText(
        make_config(csv_column_delimiter=",", batch_size_bytes=12),
        client_factory=client_factory,
        csv_headers=headers,
        max_workers=3,
    )
    records = [("a.csv", f"x{i},y{i}") for i in range(10)]

    results = list(pipeline.expand(records))

    assert len(results) == 10
    assert len(calls) == 1


def test_parallel_results_follow_flush_order(make_config, client_factory):
    pipeline = DeidentifyText(
        make_config(batch_size_bytes=10), client_factory=client_factory, max_workers=4
    )
    records = [("a.txt", f"r{i}") for i in range(20)]

    results = list(pipeline.expand(records))

    assert [r.response.item.rows[0].values[0] for r in results] == [
        f"R{i}" for i in range(20)
    ]
    assert len(client_factory.requests) == 20


def test_mismatched_row_is_rejected(make_config, client_factory):
    pipeline = DeidentifyText(
        make_config(csv_column_delimiter=","),
        client_factory=client_factory,
        csv_headers=["x", "y"],
    )

    with pytest.raises(ShapingError):
        list(pipeline.expand([("a.csv", "x1,y1,z1")]))
    assert client_factory.requests == []


def test_remote_failure_surfaces(make_config, client_factory):
    client_factory.fail_with = RemoteCallError("unavailable", status="UNAVAILABLE")
    pipeline = DeidentifyText(make_config(), client_factory=client_factory)

    with pytest.raises(RemoteCallError):
        list(pipeline.expand([("a.txt", "hello")]))
    assert len(client_factory.requests) == 1


def test_remote_failure_surfaces_from_workers(make_config, client_factory):
    client_factory.fail_with = RemoteCallError("unavailable", status="UNAVAILABLE")
    pipeline = DeidentifyText(make_config(), client_factory=client_factory, max_workers=2)

    with pytest.raises(RemoteCallError):
        list(pipeline.expand([("a.txt", "hello"), ("b.txt", "world")]))


def test_no_records_no_calls(make_config, client_factory):
    pipeline = DeidentifyText(make_config(), client_factory=client_factory)
    assert list(pipeline.expand([])) == []
    assert client_factory.clients == []


def test_invalid_worker_count(make_config, client_factory):
    with pytest.raises(ValueError):
        DeidentifyText(make_config(), client_factory=client_factory, max_workers=0)


def test_from_settings_uses_settings(client_factory):
    app_settings = Settings(project_id="proj", batch_size_bytes=512, max_workers=2)

    pipeline = DeidentifyText.from_settings(app_settings, client_factory=client_factory)

    assert pipeline.config.parent == "projects/proj"
    assert pipeline.config.batch_size_bytes == 512
    assert pipeline.max_workers == 2


def test_default_factory_selects_http_client():
    factory = default_client_factory(Settings(service_url="http://deid.local"))
    client = factory()
    try:
        assert isinstance(client, HttpDeidentifyClient)
    finally:
        client.close()


def test_default_factory_selects_presidio_client(monkeypatch):
    engine = object()
    monkeypatch.setattr(
        PresidioDeidentifyClient, "get_engine", classmethod(lambda cls, *args: engine)
    )

    client = default_client_factory(Settings())()

    assert isinstance(client, PresidioDeidentifyClient)
    assert client.engine is engine
