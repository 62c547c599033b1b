from typing import Optional

from pydantic import BaseModel


class ChurchContextResponse(BaseModel):
    slug: str
    id: Optional[str] = None


class SitePageResponse(BaseModel):
    church_slug: str
    church_id: Optional[str] = None
    path: str
