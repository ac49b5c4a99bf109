from pydantic import BaseModel


class GasSample(BaseModel):
    chain_id: int
    gas_price: int  # wei, multiplier applied (what we would bid)
    raw_gas_price: int  # wei, as reported by the node
    timestamp: int  # ms
