from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from typing import Optional, List

from addressing import MAX_PRODUCT_ID


class CreateProduct(BaseModel):
    product_id: int = Field(..., alias="productId", ge=0, le=MAX_PRODUCT_ID)
    name: str = Field(..., min_length=1, max_length=32)
    farm_name: str = Field(..., alias="farmName", min_length=1, max_length=32)


class AddLog(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)
    location: str = Field(..., min_length=1, max_length=32)


class LogEntry(BaseModel):
    status: str
    location: str
    timestamp: int


class ProductRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")
    name: str
    farm_name: str = Field(..., alias="farmName")
    harvest_timestamp: int = Field(..., alias="harvestTimestamp")
    authority: str
    history: List[LogEntry] = []


class InsightResult(BaseModel):
    freshness_score: Optional[StrictInt] = None  # 1-10 scale, passed through unclamped
    estimated_shelf_life: StrictStr
    quality_assessment: StrictStr
    visual_inspection: StrictStr
    transit_anomalies: StrictStr


class TransactionResponse(BaseModel):
    message: str
    transactionSignature: str
    address: str


class ProductResponse(BaseModel):
    message: str
    productData: ProductRecord
    aiInsights: InsightResult
    insightStatus: str


class VerifyResponse(BaseModel):
    verified: bool
    transactions: int
