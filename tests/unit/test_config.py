"""Tests for configuration loading."""

from decimal import Decimal

import pytest

from book_aggregator.infrastructure.config import (
    AggregationConfig,
    AppConfig,
    ConfigError,
    EndpointOverrides,
    ExchangeConfig,
    ObservabilityConfig,
    apply_endpoint_overrides,
    load_config,
    load_yaml_config,
)


def _exchange(**overrides):
    fields = {
        "exchange_id": "coinbase",
        "format": "coinbase",
        "url": "https://example.test/{symbol}/book",
        "symbol": "BTC-USD",
    }
    fields.update(overrides)
    return ExchangeConfig(**fields)


class TestExchangeConfig:
    """Tests for ExchangeConfig validation."""

    def test_symbol_substituted_into_url(self):
        assert _exchange().resolved_url == "https://example.test/BTC-USD/book"

    def test_zero_rate_limit_rejected(self):
        """A limit of zero can never admit a request."""
        with pytest.raises(ValueError):
            _exchange(rate_limit_requests=0)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValueError):
            _exchange(rate_limit_interval_seconds=0)
        with pytest.raises(ValueError):
            _exchange(rate_limit_interval_seconds=-1.5)

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            _exchange(format="bitstamp")

    def test_format_is_case_insensitive(self):
        assert _exchange(format="Gemini").format == "gemini"

    def test_frozen(self):
        config = _exchange()
        with pytest.raises(Exception):
            config.url = "https://elsewhere.test"


class TestAggregationConfig:
    """Tests for AggregationConfig validation."""

    def test_defaults(self):
        config = AggregationConfig()
        assert config.pair == "BTC-USD"
        assert config.default_quantity == Decimal("10.0")
        assert config.base_asset == "BTC"

    def test_deadline_must_be_positive(self):
        with pytest.raises(ValueError):
            AggregationConfig(deadline_seconds=0)

    def test_default_quantity_must_be_positive(self):
        with pytest.raises(ValueError):
            AggregationConfig(default_quantity=Decimal("-1"))


class TestAppConfig:
    """Tests for AppConfig."""

    def test_default_exchanges(self):
        """Coinbase and Gemini are configured out of the box."""
        config = AppConfig()
        assert [e.exchange_id for e in config.exchanges] == ["coinbase", "gemini"]

    def test_duplicate_exchange_ids_rejected(self):
        with pytest.raises(ValueError):
            AppConfig(exchanges=[_exchange(), _exchange()])

    def test_enabled_exchanges(self):
        config = AppConfig(
            exchanges=[
                _exchange(),
                _exchange(exchange_id="gemini", format="gemini", enabled=False),
            ]
        )
        assert [e.exchange_id for e in config.enabled_exchanges] == ["coinbase"]


class TestEndpointOverrides:
    """Tests for environment endpoint overrides."""

    def test_override_replaces_matching_exchange_url(self):
        overrides = EndpointOverrides(coinbase_api="https://mirror.test/book")
        config = apply_endpoint_overrides(AppConfig(), overrides)

        by_id = {e.exchange_id: e for e in config.exchanges}
        assert by_id["coinbase"].url == "https://mirror.test/book"
        assert by_id["gemini"].url == AppConfig().exchanges[1].url

    def test_override_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API", "https://gemini.mirror.test/book")
        config = load_config()

        by_id = {e.exchange_id: e for e in config.exchanges}
        assert by_id["gemini"].url == "https://gemini.mirror.test/book"

    def test_overrides_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("COINBASE_API", "https://mirror.test/book")
        config = load_config(env_overrides=False)
        assert config.exchanges[0].url != "https://mirror.test/book"


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_load_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COINBASE_API", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "aggregation:\n"
            "  pair: ETH-USD\n"
            "  deadline_seconds: 3\n"
            "exchanges:\n"
            "  - exchange_id: coinbase\n"
            "    format: coinbase\n"
            "    url: https://example.test/{symbol}\n"
            "    symbol: ETH-USD\n"
            "    rate_limit_requests: 3\n"
            "    rate_limit_interval_seconds: 1\n"
        )

        config = load_config(path)

        assert config.aggregation.pair == "ETH-USD"
        assert config.aggregation.deadline_seconds == 3
        assert len(config.exchanges) == 1
        assert config.exchanges[0].rate_limit_requests == 3

    def test_invalid_yaml_values_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "exchanges:\n"
            "  - exchange_id: coinbase\n"
            "    format: coinbase\n"
            "    url: https://example.test\n"
            "    rate_limit_requests: 0\n"
        )
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_config(tmp_path / "missing.yaml")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_config(path) == {}

    def test_yaml_syntax_error(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("aggregation: [\n")
        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize("content", ["- a\n- b\n", "just a string\n", "42\n"])
    def test_top_level_must_be_mapping(self, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(path)


class TestObservabilityConfig:

    def test_log_level_normalized(self):
        assert ObservabilityConfig(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "fields",
        [{"log_level": "LOUD"}, {"log_format": "xml"}, {"metrics_port": -1}, {"metrics_port": 70000}],
    )
    def test_invalid_values_rejected(self, fields):
        with pytest.raises(ValueError):
            ObservabilityConfig(**fields)
