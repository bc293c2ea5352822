import json
from pathlib import Path
from typing import Any, Iterable, Union

from pydantic import BaseModel

PRODUCTS_PATH = Path("Products") / "products.json"
SKUS_PATH = Path("Skus") / "skus.json"


class JsonSink:
    def __init__(self, output_dir: Union[str, Path]) -> None:
        self.output_dir = Path(output_dir)

    def _serialize(self, record: Any) -> Any:
        if isinstance(record, BaseModel):
            return record.model_dump(by_alias=True, mode="json")
        return record

    def write(self, relative_path: Union[str, Path], records: Iterable[Any]) -> Path:
        """Write records as an indented JSON array, replacing any existing file."""
        path = self.output_dir / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = [self._serialize(r) for r in records]
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        return path

    def write_products(self, products: Iterable[Any]) -> Path:
        return self.write(PRODUCTS_PATH, products)

    def write_skus(self, skus: Iterable[Any]) -> Path:
        return self.write(SKUS_PATH, skus)
