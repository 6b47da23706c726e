"""
Helpers for calling Gradio Spaces through their queue API.

A call is two requests: POST /gradio_api/call/<fn> returns an event_id, then
GET /gradio_api/call/<fn>/<event_id> returns a server-sent event stream such as

    event: generating
    data: null

    event: complete
    data: [{"url": "https://..."}, "Seed used for generation: 42"]

An `error` event means the Space refused the job, which on shared ZeroGPU
hardware is how an exhausted token quota shows up.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..error_handler import (
    GradioErrorEvent,
    InvalidResponseError,
    ProviderHTTPError,
)

lib_logger = logging.getLogger("token_rotator")


def extract_complete_event_data(sse_stream: str) -> Optional[Any]:
    """
    Return the parsed `data:` payload of the first `complete` event.

    Raises:
        GradioErrorEvent: the stream contains an `error` event
    Returns:
        The decoded JSON, or None if no complete event carried valid data
    """
    is_complete_event = False

    for line in sse_stream.splitlines():
        if line.startswith("event:"):
            event_name = line[len("event:"):].strip()
            if event_name == "error":
                raise GradioErrorEvent(data=sse_stream[:500])
            is_complete_event = event_name == "complete"
        elif line.startswith("data:") and is_complete_event:
            json_data = line[len("data:"):].strip()
            try:
                return json.loads(json_data)
            except json.JSONDecodeError as e:
                lib_logger.error(f"Error parsing complete event data: {e}")
                return None
    return None


def auth_headers(credential: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if credential:
        headers["Authorization"] = f"Bearer {credential}"
    return headers


async def call_gradio(
    client: httpx.AsyncClient,
    base_url: str,
    fn_name: str,
    data: List[Any],
    credential: Optional[str],
) -> Any:
    """
    Submit a job to a Gradio Space and wait for its result.

    Returns:
        The `complete` event payload (a list of outputs)
    """
    endpoint = f"{base_url}/gradio_api/call/{fn_name}"
    headers = auth_headers(credential)

    queue = await client.post(endpoint, headers=headers, json={"data": data})
    if queue.status_code >= 400:
        raise ProviderHTTPError(
            queue.status_code, f"Gradio queue error {queue.status_code}: {queue.text[:200]}"
        )
    try:
        event_id = queue.json()["event_id"]
    except (ValueError, KeyError, TypeError):
        raise InvalidResponseError("error_invalid_response")

    response = await client.get(f"{endpoint}/{event_id}", headers=headers)
    if response.status_code >= 400:
        raise ProviderHTTPError(
            response.status_code,
            f"Gradio result error {response.status_code}: {response.text[:200]}",
        )

    result = extract_complete_event_data(response.text)
    if not result:
        raise InvalidResponseError("error_invalid_response")
    return result


def first_output_url(result: Any) -> str:
    try:
        url = result[0]["url"]
    except (IndexError, KeyError, TypeError):
        raise InvalidResponseError("error_invalid_response")
    if not url:
        raise InvalidResponseError("error_invalid_response")
    return url
