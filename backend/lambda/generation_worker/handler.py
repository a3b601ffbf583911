import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timezone


logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _build_headers() -> dict[str, str]:
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "User-Agent": "casegate-generation-worker-lambda/1.0",
    }
    token = os.getenv("GENERATION_WORKER_TOKEN", "").strip()
    if token:
        headers["x-worker-token"] = token
    return headers


def _run_once() -> dict:
    base_url = os.getenv("GENERATION_WORKER_URL", "").strip()
    if not base_url:
        raise ValueError("GENERATION_WORKER_URL is required")

    batch_size = os.getenv("GENERATION_WORKER_BATCH_SIZE", "10").strip() or "10"
    # Generation calls the model once per document; allow for a full batch.
    timeout_seconds = int(os.getenv("GENERATION_WORKER_TIMEOUT_SECONDS", "600"))

    q = urllib.parse.urlencode({"batch_size": batch_size})
    url = f"{base_url}?{q}" if "?" not in base_url else f"{base_url}&{q}"

    request = urllib.request.Request(url=url, data=b"{}", method="POST", headers=_build_headers())
    with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
        raw = response.read().decode("utf-8")
        body = json.loads(raw) if raw else {}
        return {"statusCode": getattr(response, "status", 200), "body": body}


def _failure(started_at: str, status_code: int, error: str) -> dict:
    return {
        "ok": False,
        "startedAt": started_at,
        "finishedAt": datetime.now(timezone.utc).isoformat(),
        "statusCode": status_code,
        "error": error,
    }


def handler(event, context):  # noqa: ANN001
    started_at = datetime.now(timezone.utc).isoformat()
    try:
        result = _run_once()
    except urllib.error.HTTPError as exc:
        logger.exception("Generation worker HTTP error")
        return _failure(started_at, exc.code, exc.read().decode("utf-8", errors="replace"))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Generation worker run failed")
        return _failure(started_at, 500, str(exc))

    body = result["body"]
    logger.info(
        "Generation worker processed=%s done=%s failed=%s",
        body.get("processed"), body.get("done"), body.get("failed"),
    )
    return {
        "ok": True,
        "startedAt": started_at,
        "finishedAt": datetime.now(timezone.utc).isoformat(),
        "upstreamStatusCode": result["statusCode"],
        "upstreamBody": body,
    }
