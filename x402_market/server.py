"""
HTTP gateway for the x402 tool market.

Endpoints:
    GET  /health            liveness
    GET  /tools             tool catalog (names, priced descriptions, schemas)
    GET  /tools/info        same as /tools
    POST /tools/{tool_id}   invoke a tool; answers 402 until a payment proof
                            is sent in the x-402-payment header

Usage:
    python main.py
"""

import json
import sys
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from .admission import AdmissionConfig, AdmissionController, AdmissionRejected
from .catalog import ToolCatalog, default_catalog
from .config import GatewayConfig
from .errors import ConfigurationError
from .gate import PAYMENT_HEADER, Challenge, PaymentGate, ProofVerifier
from .metrics import get_metrics_emitter
from .tools import FailureKind, ResultKind, ToolExecutor, build_executors
from .tracing import init_tracing

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    message: str
    payments_enabled: bool


class ToolInfo(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any]


def _error(status_code: int, message: str, headers: Optional[dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def create_app(
    config: GatewayConfig,
    catalog: Optional[ToolCatalog] = None,
    executors: Optional[dict[str, ToolExecutor]] = None,
    verifier: Optional[ProofVerifier] = None,
    admission: Optional[AdmissionController] = None,
) -> FastAPI:
    """
    Create the gateway application.

    Args:
        config: Gateway configuration
        catalog: Tool catalog (defaults to the marketplace catalog)
        executors: Tool executors by name (defaults to build_executors(config))
        verifier: Payment proof verifier (defaults to the configured one)
        admission: Admission controller (defaults to the configured caps)

    Returns:
        Configured FastAPI application.
    """
    catalog = catalog or default_catalog()
    executors = executors if executors is not None else build_executors(config)
    gate = PaymentGate(catalog, config, verifier)
    admission = admission or AdmissionController(
        AdmissionConfig(
            max_per_tool=config.max_concurrent_per_tool,
            max_total=config.max_concurrent_total,
        )
    )

    app = FastAPI(
        title="x402 Tool Market",
        description="Pay-per-call tool gateway using HTTP 402 payment challenges",
        version="1.0.0",
    )
    app.state.config = config
    app.state.catalog = catalog
    app.state.gate = gate
    app.state.executors = executors
    app.state.admission = admission

    # CORS configuration for web UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="ok",
            message=f"x402 tool market is running ({config.payment_network}, manual 402)",
            payments_enabled=config.payments_enabled,
        )

    @app.get("/tools", response_model=list[ToolInfo])
    async def list_tools():
        logger.info("[Server] Fetching marketplace tools list")
        return catalog.to_wire()

    @app.get("/tools/info", response_model=list[ToolInfo])
    async def tools_info():
        return catalog.to_wire()

    @app.post("/tools/{tool_id}")
    async def invoke_tool(tool_id: str, request: Request):
        if tool_id not in catalog or tool_id not in executors:
            return _error(404, f"Unknown tool: {tool_id}")

        if not config.payments_enabled:
            return _error(503, "Payments are not configured on this gateway")

        proof = request.headers.get(PAYMENT_HEADER)
        try:
            decision = await gate.admit(tool_id, proof)
            if isinstance(decision, Challenge):
                return JSONResponse(status_code=402, content=decision.challenge.to_dict(decision.error))

            # From here on, a request that does not reach the tool hands its proof back
            body = await request.body()
            try:
                arguments: Any = json.loads(body) if body else {}
            except ValueError:
                arguments = None
            if not isinstance(arguments, dict):
                gate.release(tool_id, proof)
                return _error(400, "Request body must be a JSON object")

            try:
                async with admission.slot(tool_id):
                    result = await executors[tool_id].run(arguments)
            except AdmissionRejected as e:
                gate.release(tool_id, proof)
                get_metrics_emitter().record_admission_rejected(tool_id, e.scope)
                return _error(503, str(e), headers={"Retry-After": str(e.retry_after)})

            if result.failure == FailureKind.INVALID_ARGUMENTS:
                gate.release(tool_id, proof)

            if result.kind == ResultKind.BINARY and result.success:
                return Response(content=result.content, media_type=result.mime_type)
            if result.kind == ResultKind.TEXT and result.success:
                return PlainTextResponse(content=result.message)
            return JSONResponse(status_code=result.status_code, content=result.to_dict())
        except Exception as e:
            logger.error(f"Error invoking {tool_id}: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"success": False, "result": "Internal error", "error": str(e)},
            )

    logger.info("Tool endpoint: POST /tools/{tool_name}")
    logger.info("Payment network: %s, asset: %s", config.payment_network, config.payment_asset)
    logger.info("Marketplace: GET /tools (%d tools)", len(catalog))
    return app


def build_app(config: Optional[GatewayConfig] = None) -> FastAPI:
    """
    Validate configuration and create the gateway app.

    Raises:
        ConfigurationError: If required credentials are missing.
    """
    config = config or GatewayConfig.from_env()
    for warning in config.validate():
        logger.warning(warning)

    init_tracing(
        service_name="x402-tool-market",
        otlp_endpoint=config.otel_endpoint or None,
        enable_console_export=config.otel_console_export,
    )
    return create_app(config)


def serve() -> None:
    """Run the gateway with uvicorn (console entry point)."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    config = GatewayConfig.from_env()
    try:
        app = build_app(config)
    except ConfigurationError as e:
        logger.error(f"Refusing to start: {e}")
        sys.exit(1)

    logger.info("=" * 50)
    logger.info(f"x402 tool market starting on 0.0.0.0:{config.port}")
    logger.info("=" * 50)

    uvicorn.run(app, host="0.0.0.0", port=config.port, log_level="info", access_log=True)
