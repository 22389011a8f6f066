import uuid
from typing import Any

import httpx

from disclosure_worker.batch.client_base import BaseBatchClient
from disclosure_worker.batch.exceptions import BatchClientError
from disclosure_worker.batch.models import BatchJobState, BatchRequest, BatchStatus
from disclosure_worker.batch.request_builder import to_jsonl
from disclosure_worker.logging.logger import Log

_STATE_PREFIXES = ("JOB_STATE_", "BATCH_STATE_")

_PROVIDER_STATES: dict[str, BatchJobState] = {
    "UNSPECIFIED": BatchJobState.SUBMITTED,
    "PENDING": BatchJobState.SUBMITTED,
    "QUEUED": BatchJobState.SUBMITTED,
    "RUNNING": BatchJobState.RUNNING,
    "SUCCEEDED": BatchJobState.SUCCEEDED,
    "FAILED": BatchJobState.FAILED,
    "CANCELLED": BatchJobState.CANCELLED,
    "EXPIRED": BatchJobState.EXPIRED,
}


def map_provider_state(raw_state: str | None) -> BatchJobState:
    """Map ``JOB_STATE_*`` / ``BATCH_STATE_*`` names onto BatchJobState."""
    name = (raw_state or "UNSPECIFIED").upper()
    for prefix in _STATE_PREFIXES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    state = _PROVIDER_STATES.get(name)
    if state is None:
        Log.warning(f"Unknown batch state '{raw_state}', treating it as running")
        return BatchJobState.RUNNING
    return state


class GeminiBatchClient(BaseBatchClient):
    """Batch adapter for the Gemini Generative Language REST API."""

    BASE_URL = "https://generativelanguage.googleapis.com"

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int = 60,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def ensure_ready(self) -> None:
        if not self._api_key.strip():
            raise BatchClientError("GEMINI_API_KEY is required for batch extraction")

    def submit(self, requests: list[BatchRequest], model: str) -> str:
        self.ensure_ready()
        file_name = self._upload_manifest(to_jsonl(requests).encode("utf-8"))
        body = self._json(
            self._request(
                "POST",
                f"{self._base_url}/v1beta/models/{model}:batchGenerateContent",
                "Failed to create batch job",
                json={
                    "batch": {
                        "display_name": f"batch-{uuid.uuid4().hex[:8]}",
                        "input_config": {"file_name": file_name},
                    }
                },
            )
        )
        job_name = body.get("name")
        if not isinstance(job_name, str) or not job_name:
            raise BatchClientError("Batch creation response has no job name")
        Log.info(f"Created batch job {job_name} with {len(requests)} requests", model=model)
        return job_name

    def get_status(self, job_name: str) -> BatchStatus:
        body = self._json(
            self._request(
                "GET", f"{self._base_url}/v1beta/{job_name}", "Failed to get job status"
            )
        )
        return parse_status(body)

    def download(self, result_location: str) -> str:
        response = self._request(
            "GET",
            f"{self._base_url}/download/v1beta/{result_location}:download",
            "Failed to download results",
            params={"alt": "media"},
        )
        return response.text

    def _upload_manifest(self, content: bytes) -> str:
        start = self._request(
            "POST",
            f"{self._base_url}/upload/v1beta/files",
            "Failed to initiate upload",
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(content)),
                "X-Goog-Upload-Header-Content-Type": "application/jsonl",
            },
            json={"file": {"display_name": "requests.jsonl"}},
        )
        upload_url = start.headers.get("X-Goog-Upload-URL")
        if not upload_url:
            raise BatchClientError("No upload URL returned")

        uploaded = self._json(
            self._request(
                "PUT",
                upload_url,
                "Failed to upload file",
                headers={
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                content=content,
            )
        )
        file_name = (uploaded.get("file") or {}).get("name")
        if not file_name:
            raise BatchClientError("Upload response has no file name")
        Log.info(f"Uploaded batch manifest as {file_name}")
        return str(file_name)

    def _request(self, method: str, url: str, failure: str, **kwargs: Any) -> httpx.Response:
        headers = {"x-goog-api-key": self._api_key, **kwargs.pop("headers", {})}
        try:
            response = self._http.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BatchClientError(
                f"{failure}: {exc.response.status_code} - {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise BatchClientError(f"{failure}: {exc}") from exc
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise BatchClientError(f"Invalid JSON from batch API: {exc}") from exc
        if not isinstance(body, dict):
            raise BatchClientError("Batch API returned a non-object body")
        return body


def parse_status(body: dict[str, Any]) -> BatchStatus:
    """Read a batch status from either the operation or the plain job shape."""
    metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else body
    stats = metadata.get("batchStats") or {}
    error = body.get("error") or metadata.get("error")
    return BatchStatus(
        state=map_provider_state(metadata.get("state")),
        result_location=_result_location(body, metadata),
        error_message=error.get("message") if isinstance(error, dict) else None,
        total_requests=_as_int(stats.get("requestCount", stats.get("totalRequestCount"))),
        succeeded_requests=_as_int(
            stats.get("successfulRequestCount", stats.get("successRequestCount"))
        ),
        failed_requests=_as_int(stats.get("failedRequestCount")),
    )


def _result_location(body: dict[str, Any], metadata: dict[str, Any]) -> str | None:
    candidates = [
        (metadata.get("dest") or {}).get("fileName"),
        (metadata.get("output") or {}).get("responsesFile"),
        (body.get("response") or {}).get("responsesFile"),
    ]
    return next((c for c in candidates if isinstance(c, str) and c), None)


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
