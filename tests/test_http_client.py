import json

import httpx
import pytest

from deid_pipeline.core.domain import DeidentifyContentRequest, HeaderSet, Row, Table
from deid_pipeline.core.exceptions import RemoteCallError, ResourceError
from deid_pipeline.core.policy import DeidentifyConfig, InspectConfig
from deid_pipeline.engine.http_client import HttpDeidentifyClient, request_to_payload


def make_request(**kwargs):
    table = Table(
        headers=HeaderSet(("name", "phone")),
        rows=(Row(("Jane Doe", "555-0100")),),
    )
    values = {"parent": "projects/p", "item": table, "deidentify_template_name": "redact"}
    values.update(kwargs)
    return DeidentifyContentRequest(**values)


def ok_response(request):
    return httpx.Response(
        200,
        json={
            "item": {
                "table": {
                    "headers": [{"name": "name"}, {"name": "phone"}],
                    "rows": [
                        {"values": [{"stringValue": "<PERSON>"}, {"stringValue": "<PHONE_NUMBER>"}]}
                    ],
                }
            },
            "overview": {
                "transformedBytes": "16",
                "transformationSummaries": [
                    {"infoType": {"name": "PERSON"}, "results": [{"count": "1"}]},
                    {"infoType": {"name": "PHONE_NUMBER"}, "results": [{"count": 1}]},
                ],
            },
        },
    )


def test_request_payload_shape():
    payload = request_to_payload(
        make_request(
            inspect_config=InspectConfig(entities=["PERSON"], score_threshold=0.5),
            deidentify_config=DeidentifyConfig(),
        )
    )

    assert payload["deidentifyTemplateName"] == "redact"
    assert payload["inspectConfig"] == {
        "entities": ["PERSON"],
        "scoreThreshold": 0.5,
        "language": "en",
    }
    assert payload["deidentifyConfig"]["default_operator"]["type"] == "replace"
    assert payload["item"]["table"]["headers"] == [{"name": "name"}, {"name": "phone"}]
    assert payload["item"]["table"]["rows"] == [
        {"values": [{"stringValue": "Jane Doe"}, {"stringValue": "555-0100"}]}
    ]
    assert "inspectTemplateName" not in payload


def test_successful_call():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return ok_response(request)

    client = HttpDeidentifyClient(
        "http://deid.local/", api_key="secret", transport=httpx.MockTransport(handler)
    )
    with client:
        response = client.deidentify_content(make_request())

    assert seen["url"] == "http://deid.local/v2/projects/p/content:deidentify"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["deidentifyTemplateName"] == "redact"
    assert response.item.rows == (Row(("<PERSON>", "<PHONE_NUMBER>")),)
    assert response.overview.transformed_bytes == 16
    assert response.overview.transformed_counts == {"PERSON": 1, "PHONE_NUMBER": 1}


@pytest.mark.parametrize(
    "status_code,status",
    [(400, "INVALID_ARGUMENT"), (404, "NOT_FOUND"), (429, "RESOURCE_EXHAUSTED"), (502, "UNKNOWN")],
)
def test_http_errors_are_remote_errors(status_code, status):
    transport = httpx.MockTransport(
        lambda request: httpx.Response(status_code, json={"error": {"message": "nope"}})
    )
    client = HttpDeidentifyClient("http://deid.local", transport=transport)

    with pytest.raises(RemoteCallError) as excinfo:
        client.deidentify_content(make_request())

    assert excinfo.value.status_code == status_code
    assert excinfo.value.status == status
    assert "nope" in str(excinfo.value)


def test_connection_errors_are_remote_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = HttpDeidentifyClient("http://deid.local", transport=httpx.MockTransport(handler))

    with pytest.raises(RemoteCallError) as excinfo:
        client.deidentify_content(make_request())
    assert excinfo.value.status == "UNAVAILABLE"


def test_timeouts_are_remote_errors():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = HttpDeidentifyClient("http://deid.local", transport=httpx.MockTransport(handler))

    with pytest.raises(RemoteCallError) as excinfo:
        client.deidentify_content(make_request())
    assert excinfo.value.status == "DEADLINE_EXCEEDED"


def test_malformed_response():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="not json"))
    client = HttpDeidentifyClient("http://deid.local", transport=transport)

    with pytest.raises(RemoteCallError, match="Malformed"):
        client.deidentify_content(make_request())


def test_closed_client_refuses_calls():
    client = HttpDeidentifyClient("http://deid.local", transport=httpx.MockTransport(ok_response))
    client.close()

    with pytest.raises(ResourceError):
        client.deidentify_content(make_request())
