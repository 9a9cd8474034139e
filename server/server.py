"""
FastAPI Server for the Private Charging Ledger
==============================================
Provides REST API and WebSocket for the encrypted charging ledger.

Endpoints:
- GET  /status                           - System status
- GET  /context                          - Public FHE context for submitters
- POST /sessions                         - Submit an encrypted session
- POST /windows/{key}/contributions      - Accumulate into a window
- POST /windows/{key}/forecast           - Request a forecast reveal
- POST /regions/{key}/site-suggestion    - Request a site suggestion (operators)
- POST /oracle/callback/{route}          - Oracle callback entry point
- GET  /results/{request_id}             - Revealed result
- WS   /ws                               - Real-time ledger notifications

The server runs the ledger together with an in-process decryption oracle.
"""

import asyncio
import base64
import binascii
import json
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, Deque, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from fhe_core.bfv_engine import ChargingFHE, load_public_engine
from fhe_core.ciphertext import EncryptedValue
from fhe_core.key_manager import KeyManager
from fhe_core.security_logger import SecurityLogger
from coordinator.charging_ledger import ChargingLedger
from coordinator.config import LedgerConfig, ServerConfig
from coordinator.errors import (
    DecodeError,
    DuplicateDelivery,
    InvalidProof,
    LedgerError,
    NoMetricsForWindow,
    Unauthorized,
    UnknownRequest,
)
from coordinator.events import EventBus, LedgerEvent
from coordinator.oracle_interface import RevealRoute
from coordinator.window_aggregator import window_key_for
from oracle.local_oracle import LocalDecryptionOracle
from oracle.proof import ProofSigner


ERROR_STATUS = {
    NoMetricsForWindow: 404,
    UnknownRequest: 404,
    InvalidProof: 403,
    Unauthorized: 403,
    DuplicateDelivery: 409,
    DecodeError: 422,
}


class SubmitSessionRequest(BaseModel):
    encrypted_station_id: Dict[str, Any]
    encrypted_start_bucket: Dict[str, Any]
    encrypted_duration_bucket: Dict[str, Any]
    encrypted_energy: Dict[str, Any]


class ContributionRequest(BaseModel):
    encrypted_count_delta: Dict[str, Any]
    encrypted_magnitude_delta: Dict[str, Any]


class LoadBalanceRequest(BaseModel):
    encrypted_priority: Dict[str, Any]


class SiteSuggestionRequest(BaseModel):
    encrypted_demand: Dict[str, Any]
    encrypted_station_count: Dict[str, Any]


class OracleCallback(BaseModel):
    """Oracle callback body; bytes travel base64-encoded"""
    request_id: int
    cleartexts: str
    proof: str


class RevealResponse(BaseModel):
    request_id: int
    context_key: str
    route: str


class ResultResponse(BaseModel):
    request_id: int
    label: str
    payload: str
    revealed: bool


def parse_encrypted(data: Dict[str, Any], field: str) -> EncryptedValue:
    try:
        return EncryptedValue.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid ciphertext in '{field}': {e}")


def decode_b64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise HTTPException(status_code=422, detail=f"Invalid base64 in '{field}': {e}")


class ChargingLedgerServer:
    """
    Main server for the private charging ledger.

    Manages:
    - FHE key generation (or loading from the key directory)
    - The ledger (public context) and the oracle (secret context)
    - WebSocket connections for real-time notifications
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()

        # Components (initialized in initialize)
        self.oracle_fhe: Optional[ChargingFHE] = None
        self.ledger_fhe: Optional[ChargingFHE] = None
        self.logger: Optional[SecurityLogger] = None
        self.events: Optional[EventBus] = None
        self.oracle: Optional[LocalDecryptionOracle] = None
        self.ledger: Optional[ChargingLedger] = None

        self.is_running = False
        self.oracle_auto = False
        self._auto_task: Optional[asyncio.Task] = None

        self.websocket_clients: List[WebSocket] = []
        self._outbox: Deque[LedgerEvent] = deque(maxlen=1000)

    def initialize(self):
        """Initialize all components"""
        print("Initializing Private Charging Ledger...")
        ledger_config = self.config.ledger

        signer = None
        key_manager = KeyManager(ledger_config.key_dir) if ledger_config.key_dir else None

        if key_manager and key_manager.load_keys():
            print(f"  Loading keys from {ledger_config.key_dir}...")
            metadata = key_manager.get_metadata()
            self.oracle_fhe = ChargingFHE.from_context(
                key_manager.get_secret_context(),
                plain_modulus=metadata.plain_modulus,
                poly_modulus_degree=metadata.poly_modulus_degree
            )
            signer = ProofSigner.from_pem(key_manager.get_signing_key_pem())
        else:
            print("  Generating FHE keys...")
            self.oracle_fhe = ChargingFHE(
                poly_modulus_degree=ledger_config.poly_modulus_degree,
                plain_modulus=ledger_config.plain_modulus
            )
            signer = ProofSigner()
            if key_manager:
                key_manager.store_keys(self.oracle_fhe, signer.export_private_key(), signer.key_id)

        # Ledger (untrusted, public context only)
        self.ledger_fhe = load_public_engine(self.oracle_fhe)

        self.logger = SecurityLogger(ledger_config.audit_log_file)
        self.events = EventBus()
        self.events.subscribe(self._outbox.append)

        self.oracle = LocalDecryptionOracle(self.oracle_fhe, signer, self.logger)
        self.ledger = ChargingLedger(
            self.ledger_fhe,
            self.oracle,
            config=ledger_config,
            security_logger=self.logger,
            events=self.events
        )

        print(f"  Ledger ready! Context hash: {self.oracle_fhe.get_context_hash()}")
        self.is_running = True

    def require_running(self) -> ChargingLedger:
        if not self.is_running:
            raise HTTPException(status_code=503, detail="Ledger not initialized")
        return self.ledger

    def get_status(self) -> Dict[str, Any]:
        return {
            'is_running': self.is_running,
            'oracle_auto': self.oracle_auto,
            'context_hash': self.oracle_fhe.get_context_hash() if self.oracle_fhe else None,
            'ledger_stats': self.ledger.get_stats() if self.ledger else None,
            'oracle_stats': self.oracle.get_stats() if self.oracle else None,
            'security_audit': self.logger.generate_audit_report() if self.logger else None
        }

    def fulfill_pending(self) -> List[int]:
        """Let the oracle answer every queued request it can"""
        fulfilled = []
        for request_id in self.oracle.pending_ids():
            try:
                self.oracle.fulfill(request_id)
                fulfilled.append(request_id)
            except LedgerError as e:
                print(f"Oracle delivery for request {request_id} rejected: {e}")
            except ValueError as e:
                print(f"Oracle could not decrypt request {request_id}: {e}")
        return fulfilled

    async def broadcast(self, message: Dict):
        """Broadcast message to all WebSocket clients"""
        if not self.websocket_clients:
            return

        message_json = json.dumps(message)
        disconnected = []

        for client in self.websocket_clients:
            try:
                await client.send_text(message_json)
            except (WebSocketDisconnect, RuntimeError):
                disconnected.append(client)

        for client in disconnected:
            self.websocket_clients.remove(client)

    async def flush_events(self):
        """Push queued ledger notifications to WebSocket clients"""
        while self._outbox:
            event = self._outbox.popleft()
            await self.broadcast({'type': 'ledger_event', 'data': event.to_dict()})

    async def oracle_auto_loop(self):
        """Background loop standing in for an asynchronous oracle"""
        while self.oracle_auto:
            fulfilled = self.fulfill_pending()
            if fulfilled:
                print(f"Oracle fulfilled requests {fulfilled}")
            await self.flush_events()
            await asyncio.sleep(self.config.oracle_auto_interval)

    def start_oracle_auto(self):
        """Start the background oracle unless it is already running"""
        if self._auto_task is not None and not self._auto_task.done():
            return
        self.oracle_auto = True
        self._auto_task = asyncio.create_task(self.oracle_auto_loop())

    def stop_oracle_auto(self):
        self.oracle_auto = False
        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None


# Create global server instance
server = ChargingLedgerServer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown"""
    server.initialize()
    yield
    server.stop_oracle_auto()
    server.is_running = False


app = FastAPI(
    title="Private Charging Ledger",
    description="Encrypted charging-session aggregation with oracle-verified reveals",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={'detail': exc.to_dict()})


@app.get("/status")
async def get_status():
    return server.get_status()


@app.get("/context")
async def get_public_context():
    """Public FHE context: submitters encrypt with this, cannot decrypt"""
    server.require_running()
    return {
        'public_context': base64.b64encode(server.ledger_fhe.get_public_context()).decode('utf-8'),
        'plain_modulus': server.ledger_fhe.plain_modulus,
        'poly_modulus_degree': server.ledger_fhe.poly_modulus_degree,
        'context_hash': server.oracle_fhe.get_context_hash()
    }


@app.get("/window-key/{bucket_start}")
async def get_window_key(bucket_start: int):
    return {'bucket_start': bucket_start, 'window_key': window_key_for(bucket_start)}


@app.post("/sessions")
async def submit_session(body: SubmitSessionRequest):
    ledger = server.require_running()
    session_id = ledger.submit_session(
        parse_encrypted(body.encrypted_station_id, 'encrypted_station_id'),
        parse_encrypted(body.encrypted_start_bucket, 'encrypted_start_bucket'),
        parse_encrypted(body.encrypted_duration_bucket, 'encrypted_duration_bucket'),
        parse_encrypted(body.encrypted_energy, 'encrypted_energy')
    )
    session = ledger.get_session(session_id)
    await server.flush_events()
    return {'id': session_id, 'submitted_at': session.submitted_at}


@app.get("/sessions")
async def list_sessions(offset: int = 0, limit: int = 20, include_ciphertext: bool = False):
    ledger = server.require_running()
    sessions = ledger.list_sessions(offset, limit)
    if include_ciphertext:
        items = [s.to_dict() for s in sessions]
    else:
        items = [{'id': s.id, 'submitted_at': s.submitted_at,
                  'size_kb': round(s.size_kb(), 2)} for s in sessions]
    return {'total': ledger.session_count(), 'sessions': items}


@app.post("/windows/{window_key}/contributions")
async def accumulate(window_key: str, body: ContributionRequest):
    ledger = server.require_running()
    count_delta = parse_encrypted(body.encrypted_count_delta, 'encrypted_count_delta')
    magnitude_delta = parse_encrypted(body.encrypted_magnitude_delta, 'encrypted_magnitude_delta')
    try:
        ledger.accumulate(window_key, count_delta, magnitude_delta)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    metrics = ledger.get_window(window_key)
    return {'window_key': window_key, 'contributions': metrics.contributions}


@app.get("/windows/{window_key}")
async def get_window(window_key: str, include_ciphertext: bool = False):
    metrics = server.require_running().get_window(window_key)
    if include_ciphertext:
        return {'window_key': window_key, **metrics.to_dict()}
    return {
        'window_key': window_key,
        'initialized': metrics.initialized,
        'contributions': metrics.contributions,
        'encrypted_total_preview': (
            metrics.encrypted_total_energy.get_display_ciphertext(50)
            if metrics.encrypted_total_energy else None
        )
    }


@app.post("/windows/{window_key}/forecast", response_model=RevealResponse)
async def request_forecast(window_key: str):
    request_id = server.require_running().request_forecast(window_key)
    await server.flush_events()
    return RevealResponse(request_id=request_id, context_key=window_key,
                          route=RevealRoute.FORECAST.value)


@app.post("/windows/{window_key}/load-balance", response_model=RevealResponse)
async def request_load_balance(window_key: str, body: LoadBalanceRequest):
    ledger = server.require_running()
    try:
        request_id = ledger.request_load_balance(
            window_key, parse_encrypted(body.encrypted_priority, 'encrypted_priority')
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await server.flush_events()
    return RevealResponse(request_id=request_id, context_key=window_key,
                          route=RevealRoute.LOAD_BALANCE.value)


@app.post("/regions/{region_key}/site-suggestion", response_model=RevealResponse)
async def request_site_suggestion(region_key: str,
                                  body: SiteSuggestionRequest,
                                  x_operator_id: Optional[str] = Header(default=None)):
    ledger = server.require_running()
    try:
        request_id = ledger.request_site_suggestion(
            x_operator_id,
            region_key,
            parse_encrypted(body.encrypted_demand, 'encrypted_demand'),
            parse_encrypted(body.encrypted_station_count, 'encrypted_station_count')
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await server.flush_events()
    return RevealResponse(request_id=request_id, context_key=region_key,
                          route=RevealRoute.SITE_SUGGESTION.value)


@app.post("/oracle/callback/{route}", response_model=ResultResponse)
async def oracle_callback(route: RevealRoute, body: OracleCallback):
    """Oracle-initiated delivery of cleartexts plus proof"""
    ledger = server.require_running()
    result = ledger.deliver(
        route,
        body.request_id,
        decode_b64(body.cleartexts, 'cleartexts'),
        decode_b64(body.proof, 'proof')
    )
    await server.flush_events()
    return ResultResponse(request_id=body.request_id, **result.to_dict())


@app.post("/oracle/fulfill")
async def oracle_fulfill(request_id: Optional[int] = None):
    """Let the in-process oracle answer one or all queued requests"""
    server.require_running()
    if request_id is None:
        fulfilled = server.fulfill_pending()
    else:
        if request_id not in server.oracle.pending_ids():
            raise HTTPException(status_code=404, detail=f"Request {request_id} is not queued")
        try:
            server.oracle.fulfill(request_id)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        fulfilled = [request_id]
    await server.flush_events()
    return {'fulfilled': fulfilled}


@app.post("/oracle/auto/{action}")
async def toggle_oracle_auto(action: str):
    """Start/stop background oracle fulfilment"""
    if action == "start":
        server.start_oracle_auto()
        return {"oracle_auto": True}
    elif action == "stop":
        server.stop_oracle_auto()
        return {"oracle_auto": False}
    else:
        raise HTTPException(status_code=400, detail="Invalid action")


@app.get("/results/{request_id}", response_model=ResultResponse)
async def get_result(request_id: int):
    label, payload, revealed = server.require_running().get_result(request_id)
    return ResultResponse(request_id=request_id, label=label, payload=payload, revealed=revealed)


@app.get("/pending")
async def get_pending():
    return server.require_running().pending_requests()


@app.get("/security-logs")
async def get_security_logs(limit: int = 50):
    if not server.logger:
        return []
    return server.logger.to_display_format(limit)


@app.get("/events")
async def get_events(limit: int = 50):
    if not server.events:
        return []
    return [e.to_dict() for e in server.events.get_history(limit)]


@app.post("/config")
async def update_config(config: LedgerConfig):
    """Reinitialize the ledger with a new configuration"""
    server.stop_oracle_auto()
    server.config.ledger = config
    server.initialize()
    return {"status": "reconfigured", **config.model_dump(mode='json')}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket for real-time notifications"""
    await websocket.accept()
    server.websocket_clients.append(websocket)

    try:
        await websocket.send_json({
            'type': 'connected',
            'data': server.get_status()
        })

        while True:
            try:
                data = await websocket.receive_text()
                msg = json.loads(data)

                if msg.get('type') == 'ping':
                    await websocket.send_json({'type': 'pong'})
                elif msg.get('type') == 'fulfill':
                    fulfilled = server.fulfill_pending()
                    await server.flush_events()
                    await websocket.send_json({'type': 'fulfilled', 'data': fulfilled})
            except WebSocketDisconnect:
                break
    finally:
        if websocket in server.websocket_clients:
            server.websocket_clients.remove(websocket)


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the server"""
    uvicorn.run(app, host=host or server.config.host, port=port or server.config.port)


if __name__ == "__main__":
    run_server()
