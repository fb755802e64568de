import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import BaseModel

from bundler_client.client import BundlerClient, dial
from bundler_client.config import settings
from bundler_client.errors import BundlerError
from bundler_client.types import HashLookupResult, OverrideAccount
from bundler_client.user_op import RpcUserOp, UserOp

cli = typer.Typer(help="Call the JSON-RPC methods of an ERC-4337 bundler")
state = {"url": settings.rpc_url}

USER_OP_HELP = (
    "The UserOp as a JSON object with camelCase keys and hex values "
    "(sender, nonce, initCode, callData, callGasLimit, "
    "verificationGasLimit, preVerificationGas, maxFeePerGas, "
    "maxPriorityFeePerGas, paymasterAndData, signature)"
)


@cli.callback()
def main(
    url: str = typer.Option(
        settings.rpc_url, "--url", help="Bundler RPC URL or IPC socket path"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    logging.basicConfig(level=logging.DEBUG if verbose else settings.log_level)
    state["url"] = url


def _jsonable(value):
    if isinstance(value, UserOp):
        return value.to_rpc()
    if isinstance(value, HashLookupResult):
        data = value.model_dump(
            mode="json", by_alias=True, exclude={"user_operation"}
        )
        data["userOperation"] = value.user_operation.to_rpc()
        return data
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


async def _call(operation):
    client = await dial(state["url"], timeout=settings.dial_timeout)
    async with client:
        return await operation(client)


def _run(operation) -> None:
    try:
        result = asyncio.run(_call(operation))
    except (BundlerError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(_jsonable(result), indent=2))


def _parse_user_op(user_op: str) -> UserOp:
    return RpcUserOp.model_validate_json(user_op).to_user_op()


def _parse_overrides(path: Path) -> dict:
    data = json.loads(path.read_text())
    return {
        address: OverrideAccount.model_validate(override)
        for address, override in data.items()
    }


@cli.command(help="Send the UserOp to the bundler")
def send_user_op(
    entry_point: str = typer.Argument(..., help="The entry point address"),
    user_op: str = typer.Argument(..., help=USER_OP_HELP),
):
    def operation(client: BundlerClient):
        return client.send_user_operation(
            _parse_user_op(user_op), entry_point
        )

    _run(operation)


@cli.command(help="Estimate gas parameters for the UserOp")
def estimate_user_op(
    entry_point: str = typer.Argument(..., help="The entry point address"),
    user_op: str = typer.Argument(..., help=USER_OP_HELP),
    overrides: Optional[Path] = typer.Option(
        None,
        "--overrides",
        exists=True,
        dir_okay=False,
        help="JSON file mapping addresses to state overrides (nonce, code, "
        "balance, state, stateDiff); not supported by every bundler",
    ),
):
    def operation(client: BundlerClient):
        if overrides is None:
            return client.estimate_user_operation_gas(
                _parse_user_op(user_op), entry_point
            )
        return client.estimate_user_operation_gas_with_overrides(
            _parse_user_op(user_op), entry_point, _parse_overrides(overrides)
        )

    _run(operation)


@cli.command(help="Get a UserOp by its hash")
def get_user_op(hash_: str = typer.Argument(..., help="Hash of the UserOp")):
    _run(lambda client: client.get_user_operation_by_hash(hash_))


@cli.command(help="Get a UserOp receipt by its hash")
def get_user_op_receipt(
    hash_: str = typer.Argument(..., help="Hash of the UserOp"),
):
    _run(lambda client: client.get_user_operation_receipt(hash_))


@cli.command(help="Get a list of supported entry points")
def supported_entry_points():
    _run(lambda client: client.supported_entry_points())


@cli.command(help="Get the chain id of the bundler")
def chain_id():
    _run(lambda client: client.chain_id())


@cli.command(help="Clear the bundler mempool and reputations (debug)")
def clear_state():
    _run(lambda client: client.bundler_clear_state())


@cli.command(help="Dump the mempool of an entry point (debug)")
def dump_mempool(
    entry_point: str = typer.Argument(..., help="The entry point address"),
):
    _run(lambda client: client.bundler_dump_mempool(entry_point))


@cli.command(help="Force the bundler to send a bundle now (debug)")
def send_bundle_now():
    _run(lambda client: client.bundler_send_bundle_now())


@cli.command(help="Set the bundling mode to 'auto' or 'manual' (debug)")
def set_bundling_mode(mode: str = typer.Argument(..., help="Bundling mode")):
    _run(lambda client: client.bundler_set_bundling_mode(mode))


if __name__ == "__main__":
    cli()
