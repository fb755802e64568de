from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from bundler_client.hexutil import (
    decode_big,
    decode_uint64,
    encode_big,
    encode_bytes,
    encode_uint64,
    to_address,
    to_bytes,
    to_hash,
)
from bundler_client.user_op import RpcUserOp, UserOp


def _quantity(v):
    # Bundlers disagree on hex strings vs JSON numbers for gas values.
    if isinstance(v, str):
        return decode_big(v)
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"Not a quantity: {v!r}")
    return v


Quantity = Annotated[int, BeforeValidator(_quantity)]
Address = Annotated[str, BeforeValidator(to_address)]
Hash = Annotated[str, BeforeValidator(to_hash)]


class _RpcModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class GasEstimates(_RpcModel):
    pre_verification_gas: Quantity
    verification_gas_limit: Quantity
    call_gas_limit: Quantity
    verification_gas: Optional[Quantity] = None


class UserOpReceipt(_RpcModel):
    user_op_hash: Hash
    sender: Address
    paymaster: Optional[Address] = None
    nonce: Quantity
    success: bool
    actual_gas_cost: Quantity
    actual_gas_used: Quantity
    from_: Optional[Address] = Field(default=None, alias="from")
    reason: Optional[str] = None
    logs: Optional[List[Dict[str, Any]]] = None
    receipt: Optional[Dict[str, Any]] = None


class HashLookupResult(_RpcModel):
    user_operation: UserOp
    entry_point: Address
    block_number: Optional[Quantity] = None
    block_hash: Optional[Hash] = None
    transaction_hash: Optional[Hash] = None

    @field_validator("user_operation", mode="before")
    @classmethod
    def wire_user_op(cls, v):
        if isinstance(v, UserOp):
            return v
        return RpcUserOp.model_validate(v).to_user_op()


class OverrideAccount(BaseModel):
    """Account state substituted during gas estimation only.

    Accepts python values or the wire object (camelCase keys, hex
    quantities). Unknown keys are rejected.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    nonce: Optional[int] = None
    code: Optional[bytes] = None
    balance: Optional[int] = None
    state: Optional[Dict[Hash, Hash]] = None
    state_diff: Optional[Dict[Hash, Hash]] = None

    @field_validator("nonce", mode="before")
    @classmethod
    def uint64(cls, v):
        if isinstance(v, str):
            return decode_uint64(v)
        if v is not None:
            encode_uint64(v)
        return v

    @field_validator("balance", mode="before")
    @classmethod
    def uint256(cls, v):
        if isinstance(v, str):
            return decode_big(v)
        if v is not None:
            encode_big(v)
        return v

    @field_validator("code", mode="before")
    @classmethod
    def bytes_(cls, v):
        return v if v is None else to_bytes(v)

    def to_rpc(self) -> dict:
        result = {}
        if self.nonce is not None:
            result["nonce"] = encode_uint64(self.nonce)
        if self.code is not None:
            result["code"] = encode_bytes(self.code)
        if self.balance is not None:
            result["balance"] = encode_big(self.balance)
        if self.state is not None:
            result["state"] = dict(self.state)
        if self.state_diff is not None:
            result["stateDiff"] = dict(self.state_diff)
        return result
