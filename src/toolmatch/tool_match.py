import contextlib
import json
from pathlib import Path
from typing import Annotated, Any, Literal, Optional

import uvicorn
from pydantic import BaseModel, Field, StringConstraints, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from src.toolmatch.batch import BatchSummary
from src.toolmatch.errors import InvalidTaskError
from src.toolmatch.factory import build_engine
from src.toolmatch.retrieval.models import SearchContext, Task, UserPreferences
from src.toolmatch.utils.audit import AuditLogger
from src.toolmatch.yaml_config import ToolMatchConfig, load_config
from src.utils.logger import configure_logging, get_logger

YAML_CONFIG_PATH = Path.home() / ".config" / "toolmatch" / "config.yaml"

# Blank or whitespace-only task names are rejected as input
TaskName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class ToolMatchSettings(BaseSettings):
    """Process-level settings for the ToolMatch HTTP service."""

    host: str = "127.0.0.1"
    port: int = 8090
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = False
    debug: bool = False  # Expose exception details in error responses (env: TOOLMATCH_DEBUG)
    config_path: Optional[str] = None
    audit_dir: Optional[str] = None  # Enables the JSONL audit trail when set
    monitor_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="TOOLMATCH_")


class ContextPayload(BaseModel):
    session_id: str = "anonymous"
    language: str = "en"

    def to_context(self) -> SearchContext:
        return SearchContext(session_id=self.session_id, language=self.language)


class RecommendRequest(BaseModel):
    task_name: TaskName
    task_id: Optional[str] = None
    preferences: Optional[dict[str, Any]] = None
    context: ContextPayload = Field(default_factory=ContextPayload)


class TaskPayload(BaseModel):
    id: Optional[str] = None
    name: TaskName
    order: Optional[int] = None


class BatchRequest(BaseModel):
    tasks: list[TaskPayload] = Field(min_length=1)
    preferences: Optional[dict[str, Any]] = None
    context: ContextPayload = Field(default_factory=ContextPayload)
    workflow_id: Optional[str] = None
    mode: Optional[Literal["sequential", "parallel"]] = None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


async def _read_json(request: Request) -> Any:
    body = await request.body()
    return json.loads(body or b"null")


class ToolMatch:
    def __init__(self, config: Optional[ToolMatchConfig] = None, **settings: Any):
        self.settings = ToolMatchSettings(**settings)
        configure_logging(level=self.settings.log_level, json_logs=self.settings.log_json)
        self.logger = get_logger("ToolMatch")

        if config is None:
            path = Path(self.settings.config_path) if self.settings.config_path else YAML_CONFIG_PATH
            config = load_config(path)
        self.config = config

        self.audit: Optional[AuditLogger] = (
            AuditLogger(log_dir=self.settings.audit_dir) if self.settings.audit_dir else None
        )
        self.engine = build_engine(self.config, event_logger=self.audit)
        self.logger.info(f"✅ Loaded catalog with {len(self.config.catalog.tools)} tool(s)")

    @contextlib.asynccontextmanager
    async def lifespan(self, app: Starlette):
        if self.settings.monitor_enabled and self.engine.monitor is not None:
            await self.engine.monitor.start()
        try:
            yield
        finally:
            if self.engine.monitor is not None:
                await self.engine.monitor.stop()
            if self.audit is not None:
                self.audit.close()

    def create_starlette_app(self) -> Starlette:
        """Create Starlette app with the recommendation and health routes."""
        return Starlette(
            debug=self.settings.debug,
            routes=[
                Route("/recommend", endpoint=self.handle_recommend, methods=["POST"]),
                Route("/recommend/batch", endpoint=self.handle_batch, methods=["POST"]),
                Route("/health", endpoint=self.handle_health, methods=["GET"]),
            ],
            lifespan=self.lifespan,
        )

    async def run(self) -> None:
        """Serve the HTTP API until shutdown."""
        config = uvicorn.Config(
            self.create_starlette_app(),
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()

    def _internal_error(self, where: str, e: Exception) -> JSONResponse:
        self.logger.error(f"❌ Error in {where}: {e}")
        return JSONResponse(
            {"error": "Internal server error", "detail": str(e) if self.settings.debug else None},
            status_code=500,
        )

    async def handle_recommend(self, request: Request) -> JSONResponse:
        """Handle POST /recommend. A null-tool result is still a 200."""
        try:
            payload = RecommendRequest.model_validate(await _read_json(request))
            preferences = UserPreferences.from_dict(payload.preferences)
        except json.JSONDecodeError:
            return _bad_request("Request body must be valid JSON")
        except ValidationError as e:
            return _bad_request(f"Invalid request: {e.errors()[0]['msg']}")
        except InvalidTaskError as e:
            return _bad_request(str(e))

        try:
            task = Task(id=payload.task_id, name=payload.task_name) if payload.task_id else payload.task_name
            result = await self.engine.recommend(task, preferences, payload.context.to_context())
            return JSONResponse({"result": result.to_dict()})
        except Exception as e:
            return self._internal_error("handle_recommend", e)

    async def handle_batch(self, request: Request) -> JSONResponse:
        """Handle POST /recommend/batch. Results keep the input order."""
        try:
            payload = BatchRequest.model_validate(await _read_json(request))
            preferences = UserPreferences.from_dict(payload.preferences)
            tasks = [
                Task.coerce(t.model_dump(exclude_none=True), i) for i, t in enumerate(payload.tasks)
            ]
        except json.JSONDecodeError:
            return _bad_request("Request body must be valid JSON")
        except ValidationError as e:
            return _bad_request(f"Invalid request: {e.errors()[0]['msg']}")
        except InvalidTaskError as e:
            return _bad_request(str(e))

        try:
            results = await self.engine.recommend_batch(
                tasks,
                preferences,
                payload.context.to_context(),
                workflow_id=payload.workflow_id,
                mode=payload.mode,
            )
            return JSONResponse({
                "workflow_id": payload.workflow_id,
                "results": [r.to_dict() for r in results],
                "summary": BatchSummary.from_results(results).to_dict(),
            })
        except Exception as e:
            return self._internal_error("handle_batch", e)

    async def handle_health(self, request: Request) -> JSONResponse:
        """Return the latest health report with breaker and cache state."""
        try:
            report = self.engine.get_health().to_dict()
            cache = self.engine.cache.stats()
            report["breakers"] = self.engine.breakers.stats()
            report["cache"] = {"entries": cache.entries, "hit_rate": round(cache.hit_rate, 4)}
            report["monitor_running"] = bool(self.engine.monitor and self.engine.monitor.running)
            return JSONResponse(report)
        except Exception as e:
            return self._internal_error("handle_health", e)
