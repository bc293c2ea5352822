import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """Base for every persisted record: camelCase on the wire, snake_case in
    Python. Records are created once per run and never updated."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Product(Record):
    id: str = Field(default_factory=new_id)
    code: str
    name: str
    description: str
    category_tree: str
    created_at: str
    updated_at: str


class SkuSpecification(Record):
    name: str
    values: List[str]
    created_at: str
    updated_at: str


class Sku(Record):
    """One purchasable variant. `images` is the product's image tuple, shared
    by every sku of the same product."""
    id: str = Field(default_factory=new_id)
    link: str
    product_id: str
    name: str
    code: Optional[str]
    images: Tuple[str, ...]
    sku_specifications: List[SkuSpecification]
    created_at: str
    updated_at: str


class CatalogProduct(Record):
    """Product entry read straight from a listing grid (catalog profile)."""
    id: str = Field(default_factory=new_id)
    code: str
    category_tree: str
    created_at: str
    updated_at: str


class CrawlFailure(BaseModel):
    scope: str  # "page" or "detail"
    target: Union[int, str]
    reason: str
    message: str


class CrawlResult(BaseModel):
    products: List[Union[Product, CatalogProduct]] = Field(default_factory=list)
    skus: List[Sku] = Field(default_factory=list)
    failures: List[CrawlFailure] = Field(default_factory=list)
    pages_processed: int = 0
    elapsed_seconds: float = 0.0
