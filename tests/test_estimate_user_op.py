import pytest

from bundler_client.errors import DecodeError
from bundler_client.hexutil import to_address
from bundler_client.types import OverrideAccount
from tests.utils.fake_bundler import ENTRY_POINT, SENDER

GAS_ESTIMATES = {
    "preVerificationGas": "0xb708",
    "verificationGasLimit": "0x249f0",
    "callGasLimit": "0x2710",
}


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_returns_gas_estimates(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES

    estimates = await client.estimate_user_operation_gas(user_op, ENTRY_POINT)

    assert estimates.pre_verification_gas == 0xB708
    assert estimates.verification_gas_limit == 0x249F0
    assert estimates.call_gas_limit == 0x2710
    assert estimates.verification_gas is None


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_never_sends_overrides_param(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES

    await client.estimate_user_operation_gas(user_op, ENTRY_POINT)

    assert bundler.last_request["params"] == [user_op.to_rpc(), ENTRY_POINT]


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_accepts_json_numbers_and_keeps_extra_fields(
    client, bundler, user_op
):
    bundler.results["eth_estimateUserOperationGas"] = {
        "preVerificationGas": 46856,
        "verificationGas": 150000,
        "verificationGasLimit": 150000,
        "callGasLimit": 10000,
        "validUntil": "0xffffffffffff",
    }

    estimates = await client.estimate_user_operation_gas(user_op, ENTRY_POINT)

    assert estimates.pre_verification_gas == 46856
    assert estimates.verification_gas == 150000
    assert estimates.model_extra == {"validUntil": "0xffffffffffff"}


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_sends_state_overrides_as_third_param(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES
    slot = "0x" + "00" * 31 + "01"
    value = "0x" + "00" * 31 + "ff"
    overrides = {
        SENDER: OverrideAccount(
            nonce=5, balance=10**18, code=b"\x60\x00", state_diff={slot: value}
        ),
        ENTRY_POINT.lower(): OverrideAccount(state={slot: value}),
    }

    estimates = await client.estimate_user_operation_gas_with_overrides(
        user_op, ENTRY_POINT, overrides
    )

    assert estimates.call_gas_limit == 0x2710
    request = bundler.last_request
    assert request["method"] == "eth_estimateUserOperationGas"
    assert request["params"] == [
        user_op.to_rpc(),
        ENTRY_POINT,
        {
            to_address(SENDER): {
                "nonce": "0x5",
                "code": "0x6000",
                "balance": "0xde0b6b3a7640000",
                "stateDiff": {slot: value},
            },
            ENTRY_POINT: {"state": {slot: value}},
        },
    ]


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_sends_empty_overrides(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES

    await client.estimate_user_operation_gas_with_overrides(
        user_op, ENTRY_POINT, {}
    )

    assert bundler.last_request["params"] == [
        user_op.to_rpc(),
        ENTRY_POINT,
        {},
    ]


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_rejects_estimates_missing_fields(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = {"callGasLimit": "0x1"}

    with pytest.raises(DecodeError):
        await client.estimate_user_operation_gas(user_op, ENTRY_POINT)


def test_override_nonce_is_uint64():
    with pytest.raises(ValueError):
        OverrideAccount(nonce=2**64)


def test_override_from_wire_format():
    override = OverrideAccount.model_validate(
        {"nonce": "0x5", "balance": "0x64", "code": "0x6000"}
    )

    assert override == OverrideAccount(nonce=5, balance=100, code=b"\x60\x00")
    assert override.to_rpc() == {
        "nonce": "0x5",
        "code": "0x6000",
        "balance": "0x64",
    }


def test_override_rejects_unknown_keys():
    with pytest.raises(ValueError):
        OverrideAccount.model_validate({"storageDiff": {}})


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_sends_overrides_given_as_wire_dicts(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES
    slot = "0x" + "00" * 31 + "02"
    value = "0x" + "00" * 31 + "01"

    await client.estimate_user_operation_gas_with_overrides(
        user_op,
        ENTRY_POINT,
        {ENTRY_POINT: {"stateDiff": {slot: value}, "balance": "0x64"}},
    )

    assert bundler.last_request["params"][2] == {
        ENTRY_POINT: {"balance": "0x64", "stateDiff": {slot: value}}
    }


@pytest.mark.eth_estimateUserOperationGas
@pytest.mark.asyncio
async def test_rejects_unknown_override_keys(client, bundler, user_op):
    bundler.results["eth_estimateUserOperationGas"] = GAS_ESTIMATES

    with pytest.raises(ValueError):
        await client.estimate_user_operation_gas_with_overrides(
            user_op, ENTRY_POINT, {ENTRY_POINT: {"state_diffs": {}}}
        )

    assert not bundler.requests
