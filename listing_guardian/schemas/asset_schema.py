from __future__ import annotations

from typing import Literal, Optional
from pydantic import BaseModel

AssetRole = Literal["MAIN", "SECONDARY"]


class Asset(BaseModel):
    """
    One product image under compliance management.
    Owned by the caller; the fix loop reads `asset_id`/`image` and only writes `fixed_image`.
    """
    asset_id: str
    image: str  # data URI or bare base64
    role: AssetRole = "SECONDARY"
    name: str = ""
    fixed_image: Optional[str] = None  # data URI of the accepted fix

    @property
    def is_main(self) -> bool:
        return self.role == "MAIN"
