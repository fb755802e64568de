import asyncio
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    TypeVar,
)

from bundler_client.config import settings
from bundler_client.errors import DecodeError, DialError
from bundler_client.hexutil import decode_big, to_address, to_hash
from bundler_client.transport import Transport, dial_transport
from bundler_client.types import (
    GasEstimates,
    HashLookupResult,
    OverrideAccount,
    UserOpReceipt,
)
from bundler_client.user_op import RpcUserOp, UserOp

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EthClient(Protocol):
    async def send_user_operation(
        self, user_op: UserOp, entry_point: str
    ) -> str:
        ...

    async def estimate_user_operation_gas(
        self, user_op: UserOp, entry_point: str
    ) -> GasEstimates:
        ...

    async def estimate_user_operation_gas_with_overrides(
        self,
        user_op: UserOp,
        entry_point: str,
        state_overrides: Mapping[str, OverrideAccount],
    ) -> GasEstimates:
        ...

    async def get_user_operation_receipt(
        self, user_op_hash: str
    ) -> Optional[UserOpReceipt]:
        ...

    async def get_user_operation_by_hash(
        self, user_op_hash: str
    ) -> Optional[HashLookupResult]:
        ...

    async def supported_entry_points(self) -> List[str]:
        ...

    async def chain_id(self) -> int:
        ...


class DebugClient(Protocol):
    async def bundler_clear_state(self) -> None:
        ...

    async def bundler_dump_mempool(self, entry_point: str) -> List[UserOp]:
        ...

    async def bundler_send_bundle_now(self) -> Optional[str]:
        ...

    async def bundler_set_bundling_mode(self, mode: str) -> None:
        ...


class Client(EthClient, DebugClient, Protocol):
    pass


def _decode(decoder: Callable[[Any], T], result: Any) -> T:
    try:
        return decoder(result)
    except ValueError as e:
        raise DecodeError(f"Unexpected result {result!r:.200}: {e}") from e


def _user_op_from_rpc(item) -> Optional[UserOp]:
    if item is None:
        return None
    return RpcUserOp.model_validate(item).to_user_op()


def _list_of(decoder: Callable[[Any], T]) -> Callable[[Any], List[T]]:
    def decode(result):
        if not isinstance(result, list):
            raise ValueError("Expected a JSON array.")
        return [decoder(item) for item in result]

    return decode


class BundlerClient:
    """Typed bindings for the eth_ and debug_bundler_ RPC namespaces.

    Every method performs exactly one request on the wrapped transport.
    Results the protocol defines as absent are returned as None.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    async def _call(self, method: str, *params) -> Any:
        return await self.transport.call(method, list(params))

    async def send_user_operation(
        self, user_op: UserOp, entry_point: str
    ) -> str:
        result = await self._call(
            "eth_sendUserOperation", user_op.to_rpc(), to_address(entry_point)
        )
        return _decode(to_hash, result)

    async def estimate_user_operation_gas(
        self, user_op: UserOp, entry_point: str
    ) -> GasEstimates:
        result = await self._call(
            "eth_estimateUserOperationGas",
            user_op.to_rpc(),
            to_address(entry_point),
        )
        return _decode(GasEstimates.model_validate, result)

    async def estimate_user_operation_gas_with_overrides(
        self,
        user_op: UserOp,
        entry_point: str,
        state_overrides: Mapping[str, OverrideAccount],
    ) -> GasEstimates:
        """Estimate gas against simulated account state.

        Not part of ERC-4337; only some bundlers accept the third parameter.
        """
        overrides: Dict[str, dict] = {
            to_address(address): OverrideAccount.model_validate(
                override
            ).to_rpc()
            for address, override in state_overrides.items()
        }
        result = await self._call(
            "eth_estimateUserOperationGas",
            user_op.to_rpc(),
            to_address(entry_point),
            overrides,
        )
        return _decode(GasEstimates.model_validate, result)

    async def get_user_operation_receipt(
        self, user_op_hash: str
    ) -> Optional[UserOpReceipt]:
        result = await self._call(
            "eth_getUserOperationReceipt", to_hash(user_op_hash)
        )
        if not result:
            return None
        return _decode(UserOpReceipt.model_validate, result)

    async def get_user_operation_by_hash(
        self, user_op_hash: str
    ) -> Optional[HashLookupResult]:
        result = await self._call(
            "eth_getUserOperationByHash", to_hash(user_op_hash)
        )
        if not result:
            return None
        return _decode(HashLookupResult.model_validate, result)

    async def supported_entry_points(self) -> List[str]:
        result = await self._call("eth_supportedEntryPoints")
        if result is None:
            return []
        return _decode(_list_of(to_address), result)

    async def chain_id(self) -> int:
        result = await self._call("eth_chainId")
        return _decode(decode_big, result)

    async def bundler_clear_state(self) -> None:
        await self._call("debug_bundler_clearState")

    async def bundler_dump_mempool(self, entry_point: str) -> List[UserOp]:
        result = await self._call(
            "debug_bundler_dumpMempool", to_address(entry_point)
        )
        if result is None:
            return []
        user_ops = _decode(_list_of(_user_op_from_rpc), result)
        return [user_op for user_op in user_ops if user_op is not None]

    async def bundler_send_bundle_now(self) -> Optional[str]:
        """Ask the bundler to bundle immediately.

        Returns None when the bundler had nothing to send.
        """
        result = await self._call("debug_bundler_sendBundleNow")
        if result is None or result == "":
            return None
        if not isinstance(result, str):
            raise DecodeError(f"Expected a string result, got {result!r}")
        return _decode(to_hash, result)

    async def bundler_set_bundling_mode(self, mode: str) -> None:
        await self._call("debug_bundler_setBundlingMode", mode)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


async def dial(
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    headers: Optional[Dict[str, str]] = None,
) -> BundlerClient:
    """Connect to the bundler at `url` (http, ws or an IPC socket path).

    `timeout` bounds connection establishment; with None the attempt runs
    until it completes or the calling task is cancelled.
    """
    url = url or settings.rpc_url
    try:
        transport = await asyncio.wait_for(
            dial_transport(url, headers=headers), timeout
        )
    except asyncio.TimeoutError as e:
        raise DialError(f"Timed out connecting to {url}") from e

    logger.debug("Dialed %s", url)
    return BundlerClient(transport)
