"""
HARNESS MCP coordination service.
"""

import warnings
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, Unconfigured
from shared.errors import ConfigurationMissing, HarnessException, ValidationError
from shared.headers import get_header, get_joined_header, redact_headers
from service_mcp.app.adapters.vision_client import VisionClient
from service_mcp.app.agents.registry import AgentRepository
from service_mcp.app.agents.selection import (
    coordination_strategy,
    estimate_duration,
    execution_order,
    select_agents_simple,
    select_harness_agents,
    validate_task,
)
from service_mcp.app.domain.security_events import SecurityEventKind, SecurityEventLogger
from service_mcp.app.gateway.middleware import Gateway, GatewayMiddleware

METHODOLOGY_NAME = "HARNESS Engineering v3"


class TaskRequest(BaseModel):
    task: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    screenshot_analysis: Optional[Dict[str, Any]] = None


class ValidateRequest(BaseModel):
    task: str = ""
    agents: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None


class ScreenshotRequest(BaseModel):
    image_data: Optional[str] = None
    task_context: Optional[str] = None


def _service_unavailable(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Service temporarily unavailable", "message": message},
    )


class MCPService(BaseService):
    """Coordination server for the multi-terminal agent methodology."""

    def __init__(self, config: Optional[ServiceConfig] = None, gateway: Optional[Gateway] = None,
                 vision_client: Optional[VisionClient] = None):
        self._gateway = gateway
        super().__init__("mcp", config=config)

        self.agent_repository = AgentRepository(self.config.docs_root)
        self.vision_client = vision_client or VisionClient(
            self.config.vision_api_url,
            self.config.vision_api_key.get_secret_value() if self.config.vision_api_key else None,
            self.config.vision_model,
            timeout=self.config.vision_timeout_seconds,
        )

        if isinstance(self.config.credential(), Unconfigured):
            self.logger.warning("HARNESS_API_KEY not configured - running in development mode")
            warnings.warn(
                "HARNESS_API_KEY is not set: every /api route is open to any caller",
                ConfigurationMissing,
                stacklevel=2,
            )

        self._setup_debug_routes()
        self._setup_methodology_routes()
        self._setup_agent_routes()
        self._setup_selection_routes()
        self._setup_analysis_routes()

        self.app.state.mcp_service = self

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    @property
    def events(self) -> SecurityEventLogger:
        return self._gateway.events

    def _setup_security_middleware(self):
        if self._gateway is None:
            self._gateway = Gateway.from_config(self.config, metrics=self.metrics)
        self.app.add_middleware(GatewayMiddleware, gateway=self._gateway)

    def _api_error(self, request: Request, endpoint: str, exc: Exception, message: str) -> JSONResponse:
        self.events.emit(
            SecurityEventKind.API_ERROR,
            request,
            endpoint=endpoint,
            error=str(exc),
            status=500,
        )
        self.metrics.record_error("API_ERROR")
        return _service_unavailable(message)

    def _setup_debug_routes(self):
        """Client IP diagnostics, disabled in production unless explicitly enabled."""

        @self.app.get("/debug/client-ip")
        async def debug_client_ip(request: Request):
            if self.config.is_production and not self.config.enable_ip_debug:
                return JSONResponse(status_code=404, content={"error": "Not found"})

            peer = request.client.host if request.client else None
            self.events.emit(
                SecurityEventKind.IP_DEBUG_REQUEST,
                request,
                headers=redact_headers(request.headers),
                peer=peer,
            )

            return {
                "clientIp": self.gateway.client_ip(request),
                "rawConnection": peer,
                "xForwardedFor": get_joined_header(request.headers, "X-Forwarded-For"),
                "xRealIp": get_header(request.headers, "X-Real-IP"),
                "trustProxy": self.gateway.trusted_hops,
                "warning": "This endpoint is for development debugging only",
            }

    def _setup_methodology_routes(self):

        @self.app.get("/api/methodology")
        async def get_methodology(request: Request):
            endpoint = "/api/methodology"
            self.events.emit(SecurityEventKind.API_ACCESS, request, endpoint=endpoint,
                             action="methodology_request")
            try:
                methodology = self.agent_repository.load_methodology()
            except OSError as exc:
                return self._api_error(request, endpoint, exc, "Unable to process request")

            self.events.emit(SecurityEventKind.API_SUCCESS, request, endpoint=endpoint,
                             status=200, content_size=len(methodology))
            return {
                "content": methodology,
                "version": self.config.version,
                "updated": datetime.now(timezone.utc).isoformat(),
            }

    def _setup_agent_routes(self):

        @self.app.get("/api/agents")
        async def list_agents(request: Request):
            endpoint = "/api/agents"
            self.events.emit(SecurityEventKind.API_ACCESS, request, endpoint=endpoint,
                             action="harness_agents_request")
            try:
                agents = self.agent_repository.load_all()
            except Exception as exc:
                return self._api_error(request, endpoint, exc, "Unable to load HARNESS agents")

            self.events.emit(SecurityEventKind.API_SUCCESS, request, endpoint=endpoint,
                             status=200, agent_count=len(agents))
            return {
                "agents": agents,
                "count": len(agents),
                "methodology": METHODOLOGY_NAME,
                "version": self.config.version,
            }

        @self.app.get("/api/agents/{agent_name}")
        async def get_agent(agent_name: str, request: Request):
            endpoint = f"/api/agents/{agent_name}"
            self.events.emit(SecurityEventKind.API_ACCESS, request, endpoint=endpoint,
                             action="single_agent_request")

            if agent_name not in self.agent_repository.agents:
                return JSONResponse(
                    status_code=404,
                    content={
                        "error": "Agent not found",
                        "message": f"Agent '{agent_name}' is not defined in HARNESS methodology",
                        "available_agents": self.agent_repository.names(),
                    },
                )

            try:
                agent = self.agent_repository.load(agent_name)
            except HarnessException as exc:
                self.events.emit(SecurityEventKind.API_ERROR, request, endpoint=endpoint,
                                 error=exc.message, status=exc.status_code)
                return JSONResponse(
                    status_code=exc.status_code,
                    content={
                        "error": "Agent definition not found",
                        "message": exc.message,
                        "agent_config": self.agent_repository.get(agent_name).to_dict(),
                    },
                )

            agent["last_updated"] = datetime.now(timezone.utc).isoformat()
            self.events.emit(SecurityEventKind.API_SUCCESS, request, endpoint=endpoint,
                             status=200, agent_loaded=agent_name)
            return agent

    def _setup_selection_routes(self):

        @self.app.post("/api/select-agents-harness")
        async def select_agents_harness(body: TaskRequest, request: Request):
            endpoint = "/api/select-agents-harness"
            self.events.emit(SecurityEventKind.API_ACCESS, request, endpoint=endpoint,
                             action="harness_agent_selection")

            if not body.task:
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "Task required",
                        "message": "Task description is required for agent selection",
                    },
                )

            selected = select_harness_agents(body.task)
            strategy = coordination_strategy(selected)
            agents = self.agent_repository.agents
            response = {
                "task": body.task,
                "selected_agents": [dict(agents[name].to_dict(), agent=name) for name in selected],
                "coordination_strategy": strategy,
                "execution_order": execution_order(selected),
                "methodology": METHODOLOGY_NAME,
                "estimated_duration": estimate_duration(selected, body.task),
            }

            self.events.emit(SecurityEventKind.API_SUCCESS, request, endpoint=endpoint,
                             status=200, agents_selected=len(selected), strategy=strategy)
            return response

        @self.app.post("/api/select-agents")
        async def select_agents(body: TaskRequest):
            if not body.task:
                return JSONResponse(
                    status_code=400,
                    content={"error": "Task required", "message": "Task description is required"},
                )

            task_lower = body.task.lower()
            return {
                "selectedAgents": select_agents_simple(body.task),
                "reasoning": f"Selected based on task keywords: {task_lower}",
                "availableAgents": self.agent_repository.names(),
            }

        @self.app.post("/api/validate")
        async def validate(body: ValidateRequest):
            return validate_task(body.task, body.agents)

    def _setup_analysis_routes(self):

        @self.app.post("/api/analyze-screenshot")
        async def analyze_screenshot(body: ScreenshotRequest, request: Request):
            endpoint = "/api/analyze-screenshot"
            if not body.image_data:
                return JSONResponse(status_code=400, content={"error": "Image data is required"})

            self.events.emit(SecurityEventKind.API_ACCESS, request, endpoint=endpoint,
                             action="screenshot_analysis")
            try:
                analysis = await self.vision_client.analyze(body.image_data, body.task_context)
            except ValidationError as exc:
                return JSONResponse(status_code=400, content={"error": exc.message})

            self.events.emit(SecurityEventKind.API_SUCCESS, request, endpoint=endpoint,
                             status=200, fallback=bool(analysis.get("fallback")))
            return analysis


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = MCPService(config=config)
    return service.app


def run():
    """Run the MCP service with settings from the environment."""
    MCPService().run()


if __name__ == "__main__":
    run()
