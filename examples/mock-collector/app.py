"""Mock collector: a FastAPI stand-in for the remote activity endpoint.

Run with ``uvicorn app:app --port 8080`` from this directory, then point the
daemon at it with ``EDITRELAY_SERVER_URL=http://127.0.0.1:8080`` and
``EDITRELAY_API_TOKEN=demo-token``.
"""

import os
import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field

API_TOKEN = os.getenv("MOCK_COLLECTOR_TOKEN", "demo-token")

app = FastAPI(title="editrelay Mock Collector", version="0.1.0")

# clientUUID -> server id; retried batches map back to the same id.
RECEIVED: Dict[str, str] = {}


class IncomingActivity(BaseModel):
    model_config = ConfigDict(extra="allow")

    client_uuid: str = Field(alias="clientUUID")
    started_at: str = Field(alias="startedAt")
    ended_at: str = Field(alias="endedAt")
    editor: str
    project: Optional[str] = None


class IncomingBatch(BaseModel):
    activities: List[IncomingActivity]


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "received": len(RECEIVED)}


@app.post("/api/activities")
def receive(batch: IncomingBatch, authorization: str = Header(default="")) -> dict:
    if authorization != f"Bearer {API_TOKEN}":
        raise HTTPException(status_code=401, detail="unauthorized")

    ids = []
    for activity in batch.activities:
        server_id = RECEIVED.setdefault(activity.client_uuid, str(uuid.uuid4()))
        ids.append({"id": server_id})

    return {"success": True, "count": len(ids), "activities": ids}
