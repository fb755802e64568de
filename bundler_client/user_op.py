from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from bundler_client.hexutil import (
    decode_big,
    decode_bytes,
    encode_big,
    encode_bytes,
    to_address,
    to_bytes,
)

UINT256_FIELDS = (
    "nonce",
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
)
BYTES_FIELDS = ("init_code", "call_data", "paymaster_and_data", "signature")


class UserOp(BaseModel):
    """An ERC-4337 user operation.

    Integer fields are unsigned 256-bit values, byte fields may be given as
    raw bytes or 0x-prefixed hex strings. Instances are immutable.
    """

    model_config = ConfigDict(frozen=True)

    sender: str
    nonce: int
    init_code: bytes = b""
    call_data: bytes = b""
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    validate_sender = field_validator("sender", mode="before")(to_address)

    @field_validator(*UINT256_FIELDS, mode="before")
    @classmethod
    def uint256(cls, v):
        # Range check only; encode_big produces the wire value.
        encode_big(v)
        return v

    @field_validator(*BYTES_FIELDS, mode="before")
    @classmethod
    def bytes_(cls, v):
        return to_bytes(v)

    def to_rpc(self) -> dict:
        return {
            "sender": self.sender,
            "nonce": encode_big(self.nonce),
            "initCode": encode_bytes(self.init_code),
            "callData": encode_bytes(self.call_data),
            "callGasLimit": encode_big(self.call_gas_limit),
            "verificationGasLimit": encode_big(self.verification_gas_limit),
            "preVerificationGas": encode_big(self.pre_verification_gas),
            "maxFeePerGas": encode_big(self.max_fee_per_gas),
            "maxPriorityFeePerGas": encode_big(self.max_priority_fee_per_gas),
            "paymasterAndData": encode_bytes(self.paymaster_and_data),
            "signature": encode_bytes(self.signature),
        }


class RpcUserOp(BaseModel):
    """A user operation as the bundler reports it, every field a hex string."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    sender: str
    nonce: str
    init_code: str
    call_data: str
    call_gas_limit: str
    verification_gas_limit: str
    pre_verification_gas: str
    max_fee_per_gas: str
    max_priority_fee_per_gas: str
    paymaster_and_data: str
    signature: str

    validate_sender = field_validator("sender")(to_address)

    @field_validator(*UINT256_FIELDS)
    @classmethod
    def uint256(cls, v):
        decode_big(v)
        return v

    @field_validator(*BYTES_FIELDS)
    @classmethod
    def bytes_(cls, v):
        decode_bytes(v)
        return v

    @classmethod
    def from_user_op(cls, user_op: UserOp) -> "RpcUserOp":
        return cls.model_validate(user_op.to_rpc())

    def to_user_op(self) -> UserOp:
        return UserOp(
            sender=self.sender,
            nonce=decode_big(self.nonce),
            init_code=decode_bytes(self.init_code),
            call_data=decode_bytes(self.call_data),
            call_gas_limit=decode_big(self.call_gas_limit),
            verification_gas_limit=decode_big(self.verification_gas_limit),
            pre_verification_gas=decode_big(self.pre_verification_gas),
            max_fee_per_gas=decode_big(self.max_fee_per_gas),
            max_priority_fee_per_gas=decode_big(
                self.max_priority_fee_per_gas
            ),
            paymaster_and_data=decode_bytes(self.paymaster_and_data),
            signature=decode_bytes(self.signature),
        )
