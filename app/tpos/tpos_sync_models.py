from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union

Price = Union[float, int, str, None]


class VariantSyncRequest(BaseModel):
    base_product_code: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    purchase_price: Price = None
    selling_price: Price = None
    product_images: List[str] = Field(default_factory=list)
    selected_attribute_value_ids: List[str] = Field(default_factory=list)
    supplier_name: Optional[str] = None


class PreviewRequest(BaseModel):
    base_product_code: str = Field(..., min_length=1)
    selected_attribute_value_ids: List[str] = Field(default_factory=list)


class MatchRequest(BaseModel):
    base_product_code: str = Field(..., min_length=1)
    variant: str


class BatchRequest(BaseModel):
    items: List[VariantSyncRequest] = Field(..., min_length=1)


class SyncResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    already_exists: bool = False
    parent_id: Optional[int] = None
    product_code: Optional[str] = None
    variant_count: int = 0
    parent_saved: int = 0
    children_saved: int = 0
    error_kind: Optional[str] = None      # validation | external | reconciliation
    error_detail: Optional[str] = None
    tpos_status_code: Optional[int] = None  # set for external failures with a response
    rate_limited: bool = False
    external_ids: Dict[str, Any] = Field(default_factory=dict)
    unparsed_variants: List[str] = Field(default_factory=list)
    missing_variants: List[str] = Field(default_factory=list)
