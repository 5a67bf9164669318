"""Local HTTP surface for inspecting and driving the provisioner."""

from __future__ import annotations

from fastapi import FastAPI
from pydantic import BaseModel, Field

from src.nodelay.core.provisioner_service import get_provisioner_service

app = FastAPI(title="nodelay provisioner")


class LoadUpdateRequest(BaseModel):
    label: str = Field(min_length=1)
    live_executors: int = Field(default=0, ge=0)
    connecting_executors: int = Field(default=0, ge=0)
    queue_length: int = Field(default=0, ge=0)


class RoundRequest(BaseModel):
    label: str | None = None


@app.get("/health")
def health() -> dict:
    status = get_provisioner_service().status()
    return {
        "ok": True,
        "provisioner": {
            "running": status["service"]["running"],
            "no_delay_disabled": status["service"]["no_delay_disabled"],
            "pending_launch_count": status["runtime"]["pending_launch_count"],
        },
    }


@app.get("/api/provisioner/status")
def provisioner_status() -> dict:
    return get_provisioner_service().status()


@app.post("/api/provisioner/start")
def provisioner_start() -> dict:
    return get_provisioner_service().start()


@app.post("/api/provisioner/stop")
def provisioner_stop() -> dict:
    return get_provisioner_service().stop()


@app.post("/api/provisioner/round")
def provisioner_round(req: RoundRequest) -> dict:
    return get_provisioner_service().run_round(label=req.label)


@app.post("/api/load")
def update_load(req: LoadUpdateRequest) -> dict:
    return get_provisioner_service().update_load(
        label=req.label,
        live_executors=req.live_executors,
        connecting_executors=req.connecting_executors,
        queue_length=req.queue_length,
    )


@app.get("/api/launches")
def list_launches(label: str | None = None, pending_only: bool = False) -> dict:
    return get_provisioner_service().list_launches(label=label, pending_only=pending_only)


@app.post("/api/launches/{launch_id}/complete")
def complete_launch(launch_id: str) -> dict:
    return get_provisioner_service().complete_launch(launch_id=launch_id)


@app.post("/api/launches/{launch_id}/fail")
def fail_launch(launch_id: str) -> dict:
    return get_provisioner_service().fail_launch(launch_id=launch_id)


@app.post("/api/launches/{launch_id}/release")
def release_launch(launch_id: str) -> dict:
    return get_provisioner_service().release_launch(launch_id=launch_id)
