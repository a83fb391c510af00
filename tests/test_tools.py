import json
from decimal import Decimal

import pytest

from core.tools import Tool, build_wallet_tools
from core.wallet import FaucetError, WalletConfig

from conftest import FakeWallet


@pytest.fixture
def wallet():
    return FakeWallet(WalletConfig(api_key_name="n", api_key_private_key="k"), generation=1)


@pytest.fixture
def tools(wallet):
    return {tool.name: tool for tool in build_wallet_tools(wallet)}


def test_tool_set_names(tools):
    assert set(tools) == {
        "get_wallet_details",
        "get_balance",
        "get_token_balance",
        "transfer",
        "request_faucet_funds",
    }


def test_schema_shape(tools):
    schema = tools["transfer"].openai_schema()

    assert schema["type"] == "function"
    assert schema["function"]["name"] == "transfer"
    assert schema["function"]["parameters"]["required"] == ["to", "amount"]


@pytest.mark.asyncio
async def test_wallet_details(tools, wallet):
    details = json.loads(await tools["get_wallet_details"].invoke(None))

    assert details["address"] == wallet.address
    assert details["network_id"] == "base-sepolia"
    assert details["usdc_address"] == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"


@pytest.mark.asyncio
async def test_transfer_parses_amount(tools, wallet):
    result = await tools["transfer"].invoke('{"to": "0xdef", "amount": "1.5"}')

    assert result.startswith("Transferred 1.5 USDC to 0xdef")
    assert wallet.transfers == [{"to": "0xdef", "amount": Decimal("1.5")}]


@pytest.mark.asyncio
async def test_transfer_rejects_bad_amount(tools, wallet):
    result = await tools["transfer"].invoke('{"to": "0xdef", "amount": "-3"}')

    assert result == "Error: amount must be positive"
    assert wallet.transfers == []


@pytest.mark.asyncio
async def test_server_error_reports_status(tools, wallet):
    wallet.transfer_error = FaucetError("upstream unavailable", status=503)

    result = await tools["transfer"].invoke('{"to": "0xdef", "amount": "1"}')

    assert result == "Error (HTTP 503): upstream unavailable"


@pytest.mark.asyncio
async def test_invalid_arguments(tools):
    assert (await tools["get_balance"].invoke("{not json")).startswith("Error: arguments")
    assert (await tools["get_balance"].invoke("[1]")).endswith("must be an object.")
    assert (await tools["transfer"].invoke('{"amount": "1"}')).startswith(
        "Error: invalid arguments for transfer"
    )


@pytest.mark.asyncio
async def test_type_error_inside_handler_is_a_tool_failure():
    async def get_balance():
        raise TypeError("unsupported operand type(s) for +: 'int' and 'NoneType'")

    tool = Tool(name="get_balance", description="balance", handler=get_balance)

    result = await tool.invoke(None)

    assert result == "Error: unsupported operand type(s) for +: 'int' and 'NoneType'"


@pytest.mark.asyncio
async def test_unexpected_argument_is_rejected_before_the_call(tools, wallet):
    result = await tools["transfer"].invoke('{"to": "0xdef", "amount": "1", "memo": "hi"}')

    assert result.startswith("Error: invalid arguments for transfer")
    assert wallet.transfers == []
