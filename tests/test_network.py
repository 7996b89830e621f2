import pytest
from unittest.mock import patch

from rrs_terminal.network import DEFAULT_ENDPOINTS, NetworkConfig, NetworkConfigCache

from conftest import http_response

CONTRACTS = {
    "network": {
        "name": "MegaETH",
        "chainId": 4326,
        "rpcUrl": "https://rpc.example.test",
        "wsUrl": "wss://rpc.example.test",
        "explorer": "https://explorer.example.test",
    },
    "contracts": {
        "MegaCubeV5": {"address": "0x" + "01" * 20},
        "OperatorLicense": {"address": "0x" + "02" * 20},
        "Cubed": {"address": "0x" + "03" * 20},
    },
}


def test_from_dict(monkeypatch):
    monkeypatch.delenv("CAPABILITY_ENDPOINT", raising=False)
    config = NetworkConfig.from_dict(CONTRACTS)

    assert config.chain_id == 4326
    assert config.rpc_url == "https://rpc.example.test"
    assert config.megacube_address == "0x" + "01" * 20
    assert config.license_address == "0x" + "02" * 20
    assert config.cubed_address == "0x" + "03" * 20
    assert config.artifact_address == ""
    assert config.capability_endpoint == DEFAULT_ENDPOINTS["capability"]


@pytest.mark.parametrize("mutate, message", [
    (lambda d: d["network"].pop("rpcUrl"), "network.rpcUrl"),
    (lambda d: d["network"].pop("chainId"), "network.chainId"),
    (lambda d: d["contracts"].pop("MegaCubeV5"), "MegaCubeV5"),
    (lambda d: d["contracts"].pop("OperatorLicense"), "OperatorLicense"),
])
def test_from_dict_validation(mutate, message):
    data = {"network": dict(CONTRACTS["network"]), "contracts": dict(CONTRACTS["contracts"])}
    mutate(data)
    with pytest.raises(ValueError, match=message):
        NetworkConfig.from_dict(data)


@patch("rrs_terminal.network.requests.get")
def test_cache_fetches_once(mock_get):
    mock_get.return_value = http_response(200, CONTRACTS)
    cache = NetworkConfigCache(url="https://example.test/contracts.json", timeout=5)

    first = cache.get()
    second = cache.get()

    assert first is second
    mock_get.assert_called_once_with("https://example.test/contracts.json", timeout=5)

    cache.clear()
    cache.get()
    assert mock_get.call_count == 2


@patch("rrs_terminal.network.requests.get")
def test_http_error(mock_get):
    mock_get.return_value = http_response(503, reason="Service Unavailable")

    with pytest.raises(ConnectionError, match="503 Service Unavailable"):
        NetworkConfigCache(url="https://example.test/contracts.json").get()


def test_endpoint_overrides_read_when_used(monkeypatch):
    monkeypatch.setenv("CAPABILITY_ENDPOINT", "https://cap.other.test")
    monkeypatch.setenv("CONTRACTS_URL", "https://other.test/contracts.json")

    assert NetworkConfig.from_dict(CONTRACTS).capability_endpoint == "https://cap.other.test"
    assert NetworkConfigCache().url == "https://other.test/contracts.json"
