# deid_pipeline/engine/http_client.py

"""HTTP client for a remote deidentification service."""

import logging
from typing import Any, Dict, Optional

import httpx

from deid_pipeline.core.definitions import RemoteStatus
from deid_pipeline.core.domain import (
    DeidentifyContentRequest,
    DeidentifyContentResponse,
    HeaderSet,
    Row,
    Table,
    TransformationOverview,
)
from deid_pipeline.core.exceptions import RemoteCallError, ResourceError
from deid_pipeline.engine.base import DeidentifyClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0

_STATUS_BY_CODE = {
    400: RemoteStatus.INVALID_ARGUMENT,
    401: RemoteStatus.UNAUTHENTICATED,
    403: RemoteStatus.UNAUTHENTICATED,
    404: RemoteStatus.NOT_FOUND,
    429: RemoteStatus.RESOURCE_EXHAUSTED,
    500: RemoteStatus.INTERNAL,
    503: RemoteStatus.UNAVAILABLE,
    504: RemoteStatus.DEADLINE_EXCEEDED,
}


def table_to_payload(table: Table) -> Dict[str, Any]:
    return {
        "headers": [{"name": name} for name in table.headers.names],
        "rows": [
            {"values": [{"stringValue": value} for value in row.values]}
            for row in table.rows
        ],
    }


def table_from_payload(payload: Dict[str, Any]) -> Table:
    headers = HeaderSet.from_names(h["name"] for h in payload.get("headers", []))
    rows = tuple(
        Row(tuple(v.get("stringValue", "") for v in row.get("values", [])))
        for row in payload.get("rows", [])
    )
    return Table(headers=headers, rows=rows)


def request_to_payload(request: DeidentifyContentRequest) -> Dict[str, Any]:
    """Encodes a request as the service's JSON body (camelCase keys)."""
    payload: Dict[str, Any] = {}
    if request.inspect_template_name:
        payload["inspectTemplateName"] = request.inspect_template_name
    if request.inspect_config is not None:
        payload["inspectConfig"] = {
            "entities": list(request.inspect_config.entities),
            "scoreThreshold": request.inspect_config.score_threshold,
            "language": request.inspect_config.language,
        }
    if request.deidentify_template_name:
        payload["deidentifyTemplateName"] = request.deidentify_template_name
    if request.deidentify_config is not None:
        payload["deidentifyConfig"] = request.deidentify_config.model_dump(mode="json")
    if request.item is not None:
        payload["item"] = {"table": table_to_payload(request.item)}
    return payload


def response_from_payload(payload: Dict[str, Any]) -> DeidentifyContentResponse:
    """Decodes the service's JSON response."""
    table = table_from_payload(payload.get("item", {}).get("table", {}))

    overview = payload.get("overview") or {}
    counts: Dict[str, int] = {}
    for summary in overview.get("transformationSummaries", []):
        name = summary.get("infoType", {}).get("name", "UNKNOWN")
        total = sum(int(r.get("count", 0)) for r in summary.get("results", []))
        counts[name] = counts.get(name, 0) + total

    return DeidentifyContentResponse(
        item=table,
        overview=TransformationOverview(
            transformed_bytes=int(overview.get("transformedBytes", 0)),
            transformed_counts=counts,
        ),
    )


class HttpDeidentifyClient(DeidentifyClient):
    """One HTTP connection to the remote service.

    Each instance owns an httpx.Client that is closed by close(). Nothing is
    retried; errors are raised as RemoteCallError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            self._client = httpx.Client(
                base_url=base_url.rstrip("/"),
                headers=headers,
                timeout=timeout,
                transport=transport,
            )
        except Exception as e:
            raise ResourceError(f"Failed to create HTTP client for {base_url}: {e}") from e

        logger.debug(f"Created HTTP client for {base_url} (timeout={timeout}s)")

    def deidentify_content(
        self, request: DeidentifyContentRequest
    ) -> DeidentifyContentResponse:
        if self._client.is_closed:
            raise ResourceError("Client is closed")

        endpoint = f"/v2/{request.parent}/content:deidentify"

        try:
            response = self._client.post(endpoint, json=request_to_payload(request))
            response.raise_for_status()
            return response_from_payload(response.json())

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            try:
                details = e.response.json().get("error", {}).get("message")
            except (ValueError, AttributeError):
                details = e.response.text[:200] if e.response.text else None
            raise RemoteCallError(
                f"Deidentify request failed with HTTP {status_code}: {details}",
                status=_STATUS_BY_CODE.get(status_code, RemoteStatus.UNKNOWN),
                status_code=status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise RemoteCallError(
                f"Deidentify request timed out: {e}",
                status=RemoteStatus.DEADLINE_EXCEEDED,
            ) from e
        except httpx.TransportError as e:
            raise RemoteCallError(
                f"Failed to reach deidentify service: {e}",
                status=RemoteStatus.UNAVAILABLE,
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteCallError(
                f"Malformed deidentify response: {e}", status=RemoteStatus.INTERNAL
            ) from e

    def close(self) -> None:
        self._client.close()
