from pydantic import BaseModel


class StockLevelRead(BaseModel):
    product_id: int
    rack_id: int

    qty_on_hand: int
    qty_reserved: int
    qty_available: int  # READ ONLY: on_hand - reserved

    class Config:
        from_attributes = True
