"""
Smoke-check a running server.

    BACKEND_BASE_URL=http://127.0.0.1:8000 python -m baropodo.scripts.smoke_api [A.pdf B.pdf C.pdf]

With three PDF paths it also posts a full analysis (run the server with
BARO_MOCK_LLM=1 to avoid real model calls).
"""

import os
import sys
from pathlib import Path

import httpx


def main() -> None:
    base_url = os.getenv("BACKEND_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
    r = httpx.get(f"{base_url}/api/health", timeout=20.0)
    r.raise_for_status()
    print(r.json())

    paths = [Path(p) for p in sys.argv[1:4]]
    if len(paths) != 3:
        return
    files = {
        field: (p.name, p.read_bytes(), "application/pdf")
        for field, p in zip(("neutral", "closed_eyes", "cotton_rolls"), paths)
    }
    r = httpx.post(f"{base_url}/api/analyze", files=files, data={"mode": "normal"}, timeout=120.0)
    body = r.json()
    if not body.get("ok"):
        raise SystemExit(f"analyze failed ({r.status_code}): {body.get('error')}")
    data = body["data"]
    print({"summary": data["summary"], "timings": data["debug"]["timings"]})


if __name__ == "__main__":
    main()
