"""Print relay service API built with FastAPI.

The gateway sends one ticket summary per client to ``POST /print``. The
relay renders it as fixed-width text for an 80 mm thermal printer, stores
it as a queued print job through ``repo.PrintJobRepo`` and answers with the
job id. Printer drivers pick queued jobs up from the database.
"""

import uuid, logging
import time
from typing import List
from sqlalchemy import text
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from pythonjsonlogger import jsonlogger
from repo import PrintJobRepo, init_db, engine

app = FastAPI(title="Print Relay Service")

WIDTH = 42  # characters per line on 80 mm paper

logger = logging.getLogger("print_relay")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait for the database to accept connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class TicketLine(BaseModel):
    """One paella on the ticket."""
    servings: int = Field(gt=0)
    rice_type: str | None = None
    status: str | None = None
    deposit: float | None = None
    price: float | None = None
    notes: str = ""


class TicketRequest(BaseModel):
    """Ticket summary sent by the gateway.

    Attributes:
        reference: Client id.
        client_name: Full name printed in the header.
        phone: Optional contact phone.
        lines: One entry per paella.
        total_deposit: Sum of the deposits.
        total_price: Sum of the known prices.
    """
    reference: str = Field(min_length=1, max_length=64)
    client_name: str
    phone: str | None = None
    lines: List[TicketLine] = Field(min_length=1)
    total_deposit: float = 0
    total_price: float = 0


class PrintResponse(BaseModel):
    printed: bool
    job_id: str | None = None


def _amount(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


def _row(left: str, right: str) -> str:
    left = left[: WIDTH - len(right) - 1]
    return f"{left}{' ' * (WIDTH - len(left) - len(right))}{right}"


def render_ticket(req: TicketRequest) -> str:
    """Render the ticket as fixed-width text.

    Args:
        req: Validated ticket summary.

    Returns:
        str: Lines of at most ``WIDTH`` characters joined by newlines.
    """
    out = ["PAELLAS".center(WIDTH), "=" * WIDTH, req.client_name[:WIDTH]]
    if req.phone:
        out.append(f"Tel: {req.phone}"[:WIDTH])
    out.append("-" * WIDTH)
    for i, line in enumerate(req.lines, start=1):
        out.append(_row(f"{i}. {line.rice_type or 'Paella'} x{line.servings}", _amount(line.price)))
        out.append(_row("   Fianza", _amount(line.deposit)))
        if line.notes:
            out.append(f"   {line.notes}"[:WIDTH])
    out.append("-" * WIDTH)
    out.append(_row("TOTAL FIANZA", _amount(req.total_deposit)))
    out.append(_row("TOTAL", _amount(req.total_price)))
    out.append(f"Ref: {req.reference}"[:WIDTH])
    return "\n".join(out)


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.post("/print", response_model=PrintResponse)
def print_ticket(req: TicketRequest, request: Request):
    """Queue a ticket for printing.

    Raises:
        HTTPException: With status 503 when the job cannot be stored.
    """
    body = render_ticket(req)
    try:
        job_id = PrintJobRepo().create(req.reference, body, req.model_dump())
    except Exception:
        logger.exception("print job not stored",
                         extra={"request_id": getattr(request.state, "request_id", "-"), "reference": req.reference})
        raise HTTPException(status_code=503, detail={"printed": False, "detail": "PRINT_QUEUE_UNAVAILABLE"})
    logger.info("ticket queued",
                extra={"request_id": getattr(request.state, "request_id", "-"), "job_id": job_id, "reference": req.reference})
    return PrintResponse(printed=True, job_id=job_id)


@app.get("/jobs/{job_id}")
def get_job(job_id: str):
    """Return a stored job with its rendered text (reprints, audits)."""
    job = PrintJobRepo().get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return {"job_id": job.id, "reference": job.reference, "status": job.status, "body": job.body}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
