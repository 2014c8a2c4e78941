import asyncio
import io
import logging
import os
from typing import Annotated, Optional

from fastapi import FastAPI, HTTPException, Depends, Response, Request, Path, File, UploadFile
from fastapi.middleware.cors import CORSMiddleware

import qrcode

from addressing import MAX_PRODUCT_ID
from config import Settings, load_settings, configure_logging
from database import make_engine
from errors import (
    MalformedRecord, NetworkUnavailable, RecordAlreadyExists, RecordNotFound, Unauthorized, WriteRejected,
)
from gemini import GeminiModel, ImageAttachment
from insights import InsightPipeline
from ledger import SqlLedger
from ledger_client import LedgerClient
from program import ProductProgram
from schemas import AddLog, CreateProduct, ProductRecord, ProductResponse, TransactionResponse, VerifyResponse
from signing import SigningIdentity

logger = logging.getLogger(__name__)

# ---------- App ----------
app = FastAPI(title="VeriFresh Ledger Service", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ProductId = Annotated[int, Path(ge=0, le=MAX_PRODUCT_ID)]


@app.on_event("startup")
async def on_startup():
    settings = load_settings()
    configure_logging(settings.log_level)

    ledger = SqlLedger(make_engine(settings.database_url), ProductProgram(settings.program_id))
    ledger.create_schema()
    identity = SigningIdentity.from_secret(settings.wallet_secret_key)
    model = GeminiModel(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.insight_timeout,
    )

    app.state.settings = settings
    app.state.model = model
    app.state.ledger_client = LedgerClient(ledger, identity)
    app.state.insights = InsightPipeline(model, timeout=settings.insight_timeout)
    logger.info("ledger service configured for program %s", settings.program_id)
    logger.info("server wallet address: %s", identity.public_key)


@app.on_event("shutdown")
async def on_shutdown():
    model = getattr(app.state, "model", None)
    if model is not None:
        await model.aclose()


# ---------- Dependencies ----------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger_client(request: Request) -> LedgerClient:
    return request.app.state.ledger_client


def get_insight_pipeline(request: Request) -> InsightPipeline:
    return request.app.state.insights


# ---------- Helpers ----------
async def _ledger_call(coro, settings: Settings):
    """Await a ledger operation under the request deadline, mapping failures to HTTP errors."""
    try:
        return await asyncio.wait_for(coro, settings.request_timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Ledger request timed out.")
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Product not found on the blockchain.")
    except RecordAlreadyExists as e:
        raise HTTPException(status_code=409, detail=f"Product already exists: {e}")
    except Unauthorized as e:
        raise HTTPException(status_code=403, detail=str(e))
    except WriteRejected as e:
        raise HTTPException(status_code=400, detail=f"Ledger rejected the transaction: {e}")
    except NetworkUnavailable:
        logger.exception("ledger unavailable")
        raise HTTPException(status_code=503, detail="Ledger is unavailable.")
    except MalformedRecord:
        logger.exception("malformed product record")
        raise HTTPException(status_code=502, detail="Product record on the ledger could not be decoded.")


async def _fetch_or_404(product_id: int, ledger: LedgerClient, settings: Settings) -> ProductRecord:
    record = await _ledger_call(ledger.fetch_product(product_id), settings)
    if record is None:
        raise HTTPException(status_code=404, detail="Product not found on the blockchain.")
    return record


async def _with_insights(record: ProductRecord, pipeline: InsightPipeline, message: str,
                         image: Optional[ImageAttachment] = None) -> ProductResponse:
    outcome = await pipeline.generate_insights(record, image)
    return ProductResponse(
        message=message,
        productData=record,
        aiInsights=outcome.result,
        insightStatus=outcome.status.value,
    )


# ---------- APIs ----------
@app.get("/health")
def health():
    return {"status": "ok", "message": "Server is alive!"}


@app.post("/products", response_model=TransactionResponse, status_code=201)
async def create_product(
    body: CreateProduct,
    ledger: LedgerClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
):
    receipt = await _ledger_call(ledger.create_product(body.product_id, body.name, body.farm_name), settings)
    return TransactionResponse(
        message="Product created successfully on the blockchain.",
        transactionSignature=receipt.signature,
        address=receipt.address,
    )


@app.post("/products/{product_id}/logs", response_model=TransactionResponse)
async def add_log(
    product_id: ProductId,
    body: AddLog,
    ledger: LedgerClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
):
    receipt = await _ledger_call(ledger.add_log(product_id, body.status, body.location), settings)
    return TransactionResponse(
        message="Log added successfully to the blockchain.",
        transactionSignature=receipt.signature,
        address=receipt.address,
    )


@app.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: ProductId,
    ledger: LedgerClient = Depends(get_ledger_client),
    pipeline: InsightPipeline = Depends(get_insight_pipeline),
    settings: Settings = Depends(get_settings),
):
    record = await _fetch_or_404(product_id, ledger, settings)
    return await _with_insights(record, pipeline, "Product data and AI insights fetched successfully.")


@app.post("/products/{product_id}/image", response_model=ProductResponse)
async def analyze_product_image(
    product_id: ProductId,
    product_image: Optional[UploadFile] = File(None, alias="productImage"),
    ledger: LedgerClient = Depends(get_ledger_client),
    pipeline: InsightPipeline = Depends(get_insight_pipeline),
    settings: Settings = Depends(get_settings),
):
    if product_image is None:
        raise HTTPException(status_code=400, detail="No image file uploaded.")
    if not (product_image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Uploaded file is not an image.")
    data = await product_image.read(settings.max_image_bytes + 1)
    if len(data) > settings.max_image_bytes:
        raise HTTPException(status_code=413, detail=f"Image exceeds {settings.max_image_bytes} bytes.")
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded image is empty.")

    record = await _fetch_or_404(product_id, ledger, settings)
    image = ImageAttachment(data=data, mime_type=product_image.content_type)
    return await _with_insights(record, pipeline, "Multimodal AI insights generated successfully.", image)


@app.get("/products/{product_id}/verify", response_model=VerifyResponse)
async def verify_product(
    product_id: ProductId,
    ledger: LedgerClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
):
    report = await _ledger_call(ledger.verify_product(product_id), settings)
    if report is None:
        raise HTTPException(status_code=404, detail="Product not found on the blockchain.")
    return VerifyResponse(verified=report.verified, transactions=report.transactions)


@app.get("/products/{product_id}/qrcode")
async def product_qrcode(
    product_id: ProductId,
    ledger: LedgerClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings),
):
    await _fetch_or_404(product_id, ledger, settings)
    url = f"{settings.base_url}/products/{product_id}"
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")
