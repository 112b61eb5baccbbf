"""
FastAPI demo application for the lifecycle notification bus.

This application provides:
1. Demo endpoints that run a scenario on a fresh bus and report what was
   broadcast and what mail went out (/demo/...)
2. An endpoint listing which entity types publish under which namespaces

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

from lifecycle_bus.demo import (
    DemoEnvironment,
    author_sync_scenario,
    build_environment,
    failed_write_scenario,
    instrumentation_scenario,
    user_lifecycle_scenario,
)
from lifecycle_bus.event_bus import Event
from lifecycle_bus.lifecycle import lifecycle_adapter
from shared.models import Post, User


# Response models
class EventSummary(BaseModel):
    """One broadcast event, without the entity object itself."""
    name: str
    entity_id: Optional[int] = None
    changes: Optional[dict[str, Any]] = None
    duration: Optional[float] = None
    error: Optional[str] = None


class DemoResult(BaseModel):
    """Result of running a demo scenario."""
    scenario: str
    events: list[EventSummary]
    mail_sent: int
    messages: list[dict[str, Any]]
    posts: list[dict[str, Any]] = []


class NamespaceInfo(BaseModel):
    entity_type: str
    namespace: str
    policy: str


def _summarize(event: Event) -> EventSummary:
    entity = event.payload.get("entity")
    return EventSummary(
        name=event.name,
        entity_id=getattr(entity, "id", None),
        changes=event.payload.get("changes"),
        duration=event.duration,
        error=event.error,
    )


def _result(scenario: str, env: DemoEnvironment) -> DemoResult:
    return DemoResult(
        scenario=scenario,
        events=[_summarize(e) for e in env.events],
        mail_sent=env.channel.get_sent_count(),
        messages=[m.to_dict() for m in env.channel.sent_messages],
        posts=[
            {"id": p.id, "title": p.title, "author_name": p.author_name}
            for p in env.data_store.all(Post)
        ],
    )


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logging.info("Starting Lifecycle Notification Bus Demo API")
    yield
    logging.info("Shutting down")


# Create the FastAPI app
app = FastAPI(
    title="Lifecycle Notification Bus Demo",
    description="""
    Entities publish their lifecycle (created, field changed, destroyed);
    listeners subscribe and produce side effects.

    ## Endpoints

    - `/demo/*` - Run a scenario on a fresh bus and see what was broadcast
    - `/namespaces` - Which entity types publish under which namespaces
    """,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "lifecycle-notification-bus-demo"}


# =============================================================================
# Demo Endpoints
# =============================================================================

@app.post("/demo/user-lifecycle", response_model=DemoResult, tags=["Demo"])
def demo_user_lifecycle(name: str = "Ada", new_name: str = "Ada L."):
    """
    Create a user, rename them, change their email, and delete them.

    Expect user.created, user.name_changed, user.email_changed and
    user.destroyed, each followed by account mail.
    """
    env = build_environment()
    try:
        user_lifecycle_scenario(env, name=name, new_name=new_name)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))
    return _result("user-lifecycle", env)


@app.post("/demo/author-sync", response_model=DemoResult, tags=["Demo"])
def demo_author_sync(new_name: str = "Grace B. Hopper"):
    """
    Create a user with two posts, then rename the user.

    The rename reaches the posts' author_name through a listener, not
    through the User model.
    """
    env = build_environment()
    try:
        author_sync_scenario(env, new_name=new_name)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))
    return _result("author-sync", env)


@app.post("/demo/failed-write", response_model=DemoResult, tags=["Demo"])
def demo_failed_write():
    """
    Rename a user, fail the write, then retry it.

    Only the retry broadcasts user.name_changed.
    """
    env = build_environment()
    failed_write_scenario(env)
    return _result("failed-write", env)


@app.post("/demo/instrumentation", response_model=DemoResult, tags=["Demo"])
def demo_instrumentation():
    """
    Time two units of work with the timed broadcast form.

    Both events carry a duration; the failing one also carries its error.
    """
    env = build_environment()
    instrumentation_scenario(env)
    return _result("instrumentation", env)


# =============================================================================
# Introspection
# =============================================================================

@app.get("/namespaces", response_model=list[NamespaceInfo], tags=["Data"])
def get_namespaces():
    """List the namespace attachments of the demo entity types."""
    info = []
    for entity_type in (User, Post):
        adapter = lifecycle_adapter(entity_type)
        if adapter is None:
            continue
        for attachment in adapter.attachments:
            info.append(NamespaceInfo(
                entity_type=entity_type.__name__,
                namespace=attachment.namespace,
                policy=repr(attachment.policy),
            ))
    return info
