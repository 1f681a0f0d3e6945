from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DeliveryZoneRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slug: str
    name: str
    city: str | None = None
    delivery_fee: Decimal
