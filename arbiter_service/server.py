from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from arbiter_governance.config import ArbiterConfig
from arbiter_governance.constants import DEFAULT_HOST, DEFAULT_LEDGER_PATH, DEFAULT_PORT, DEFAULT_STATE_PATH
from arbiter_governance.engine import ArbitrationEngine
from arbiter_governance.errors import ArbitrationError
from arbiter_governance.utils import Payload, from_hex

from .broadcaster import AuditBroadcaster
from .models import (
    AgentResponse,
    DecisionResponse,
    OutcomeRequest,
    PredictionRequest,
    ProposalRequest,
    ProposalResponse,
    RegisterAgentRequest,
    ReputationRequest,
    paginate,
)

logger = logging.getLogger("arbiter.service")

_STATUS_BY_CODE = {
    "NotRegistered": 403,
    "UnknownAgent": 404,
    "InvalidProposal": 404,
    "UnknownProposal": 404,
}
_CONFLICT_STATUS = 409


def status_for(exc: ArbitrationError) -> int:
    return _STATUS_BY_CODE.get(exc.code, _CONFLICT_STATUS)


async def arbitration_error_handler(_: Request, exc: ArbitrationError) -> JSONResponse:
    return JSONResponse(status_code=status_for(exc), content=exc.as_dict())


async def invalid_input_handler(_: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"code": "InvalidInput", "detail": str(exc)})


def _decode_config(request: ProposalRequest) -> Payload:
    if request.config_encoding == "hex":
        try:
            return from_hex(request.config)
        except ValueError as exc:
            raise ValueError(f"Proposal config is not valid hex: {exc}") from exc
    return request.config


def create_app(
    *,
    engine: Optional[ArbitrationEngine] = None,
    broadcaster: Optional[AuditBroadcaster] = None,
    persist_state: bool = False,
) -> FastAPI:
    resolved_engine = engine or ArbitrationEngine()
    stream_bridge = broadcaster or AuditBroadcaster(resolved_engine.ledger)

    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        await stream_bridge.start()
        try:
            yield
        finally:
            await stream_bridge.stop()
            if persist_state:
                resolved_engine.save_state()

    app = FastAPI(
        title="Conflict Arbiter",
        description="Propose, predict, decide and record outcomes over a hash-chained audit ledger.",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.engine = resolved_engine
    app.state.broadcaster = stream_bridge
    app.add_exception_handler(ArbitrationError, arbitration_error_handler)
    app.add_exception_handler(ValueError, invalid_input_handler)

    @app.post("/api/agents", response_model=AgentResponse, status_code=201)
    def register_agent(request: RegisterAgentRequest) -> AgentResponse:
        agent = resolved_engine.register_agent(request.identity, request.label, request.initial_reputation)
        return AgentResponse.from_agent(agent)

    @app.get("/api/agents")
    def list_agents() -> dict:
        roster = resolved_engine.registry.roster
        return {"items": roster, "count": resolved_engine.registered_agent_count()}

    @app.get("/api/agents/{identity}", response_model=AgentResponse)
    def get_agent(identity: str) -> AgentResponse:
        return AgentResponse.from_agent(resolved_engine.get_agent(identity))

    @app.post("/api/agents/{identity}/reputation", response_model=AgentResponse)
    def adjust_reputation(identity: str, request: ReputationRequest) -> AgentResponse:
        resolved_engine.adjust_reputation(identity, request.delta)
        return AgentResponse.from_agent(resolved_engine.get_agent(identity))

    @app.post("/api/proposals", response_model=ProposalResponse, status_code=201)
    def submit_proposal(
        request: ProposalRequest,
        x_agent_id: str = Header(..., alias="X-Agent-Id"),
    ) -> ProposalResponse:
        proposal_id = resolved_engine.submit_proposal(x_agent_id, _decode_config(request), request.predicted_value)
        return ProposalResponse.from_proposal(resolved_engine.get_proposal(proposal_id))

    @app.get("/api/proposals/{proposal_id}", response_model=ProposalResponse)
    def get_proposal(proposal_id: int) -> ProposalResponse:
        return ProposalResponse.from_proposal(resolved_engine.get_proposal(proposal_id))

    @app.post("/api/proposals/{proposal_id}/predictions", response_model=ProposalResponse)
    def submit_prediction(
        proposal_id: int,
        request: PredictionRequest,
        x_agent_id: str = Header(..., alias="X-Agent-Id"),
    ) -> ProposalResponse:
        resolved_engine.submit_prediction(x_agent_id, proposal_id, request.support)
        return ProposalResponse.from_proposal(resolved_engine.get_proposal(proposal_id))

    @app.post("/api/proposals/{proposal_id}/decision", response_model=DecisionResponse)
    def evaluate_decision(proposal_id: int) -> DecisionResponse:
        approved = resolved_engine.evaluate_decision(proposal_id)
        proposal = resolved_engine.get_proposal(proposal_id)
        return DecisionResponse(
            proposal_id=proposal_id,
            approved=approved,
            support_count=proposal.support_count,
            oppose_count=proposal.oppose_count,
        )

    @app.post("/api/proposals/{proposal_id}/outcome", response_model=ProposalResponse)
    def record_outcome(
        proposal_id: int,
        request: OutcomeRequest,
        x_agent_id: Optional[str] = Header(default=None, alias="X-Agent-Id"),
    ) -> ProposalResponse:
        resolved_engine.record_outcome(proposal_id, request.outcome_hash, caller=x_agent_id)
        return ProposalResponse.from_proposal(resolved_engine.get_proposal(proposal_id))

    @app.get("/api/audit")
    def audit(limit: int = 50, cursor: str | None = None) -> dict:
        entries = resolved_engine.ledger.read_entries()
        page = paginate(entries, limit=limit, cursor=cursor)
        page["chain_valid"] = resolved_engine.ledger.validate_hash_chain()
        page["head_hash"] = resolved_engine.ledger.head_hash
        return page

    @app.get("/api/health")
    def health() -> dict:
        return {
            "status": "ok",
            "agents": resolved_engine.registered_agent_count(),
            "proposals": resolved_engine.proposals.count,
            "ledger_entries": len(resolved_engine.ledger),
            "chain_valid": resolved_engine.ledger.validate_hash_chain(),
        }

    @app.websocket("/ws/events")
    async def ws_events(websocket: WebSocket) -> None:
        await websocket.accept()
        queue = stream_bridge.subscribe()
        try:
            while True:
                envelope = await queue.get()
                await websocket.send_json(_model_to_dict(envelope))
        except WebSocketDisconnect:
            return
        finally:
            stream_bridge.unsubscribe(queue)

    return app


def build_standalone_app(config: ArbiterConfig) -> FastAPI:
    engine = ArbitrationEngine.from_config(config)
    return create_app(engine=engine, persist_state=config.state_path is not None)


def _model_to_dict(model: object) -> Dict[str, Any]:
    dump = getattr(model, "model_dump", None)
    if callable(dump):
        return dict(dump())
    return dict(model.dict())  # type: ignore[attr-defined]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the conflict arbiter HTTP service.")
    parser.add_argument("--host", type=str, default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--ledger-path", type=str, default=DEFAULT_LEDGER_PATH)
    parser.add_argument("--state-path", type=str, default=DEFAULT_STATE_PATH)
    parser.add_argument("--decision-window", type=int, default=0)
    parser.add_argument("--enforce-decision-window", action="store_true")
    parser.add_argument("--log-level", type=str, default="info")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    config = ArbiterConfig.from_mapping(vars(args))
    logging.basicConfig(level=config.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")
    app = build_standalone_app(config)
    logger.info("Serving arbiter on %s:%s (ledger=%s)", config.host, config.port, config.ledger_path)
    import uvicorn

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level,
    )


if __name__ == "__main__":
    main()
