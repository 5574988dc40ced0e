import pytest
from pydantic import field_validator
from pydantic_settings import BaseSettings

from shared.validators import STRING_LIST_FIELDS, StringListEnvSettingsSource, parse_string_list


class TestParseStringList:
    def test_json_array_string(self):
        result = parse_string_list('["http://a.com","http://b.com"]')
        assert result == ["http://a.com", "http://b.com"]

    def test_comma_separated_string(self):
        result = parse_string_list("http://a.com,http://b.com")
        assert result == ["http://a.com", "http://b.com"]

    def test_comma_separated_with_whitespace(self):
        result = parse_string_list("http://a.com , http://b.com")
        assert result == ["http://a.com", "http://b.com"]

    def test_passthrough_list(self):
        origins = ["http://a.com", "http://b.com"]
        result = parse_string_list(origins)
        assert result == origins

    def test_empty_string_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("")

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list("[not valid json")

    def test_json_mixed_types_array_raises(self):
        with pytest.raises(ValueError, match="must be an array of strings"):
            parse_string_list('["http://a.com", 123]')

    def test_json_empty_array_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("[]")

    def test_empty_list_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list([])

    def test_comma_separated_skips_empty_segments(self):
        result = parse_string_list("http://a.com,,http://b.com,")
        assert result == ["http://a.com", "http://b.com"]

    def test_comma_only_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(",")

    def test_multiple_commas_only_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(",,,,")

    def test_allow_empty_accepts_empty_list(self):
        assert parse_string_list([], allow_empty=True) == []

    def test_allow_empty_accepts_empty_json_array(self):
        assert parse_string_list("[]", allow_empty=True) == []

    def test_allow_empty_still_rejects_blank_string(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("   ", allow_empty=True)


class _ListSettings(BaseSettings):
    model_config = {"env_prefix": "VALIDATORS_TEST_"}

    api_keys: list[str]
    cors_origins: list[str] = []

    @field_validator("api_keys", mode="before")
    @classmethod
    def _api_keys(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):  # noqa: ARG003
        return init_settings, StringListEnvSettingsSource(settings_cls)


class TestStringListEnvSettingsSource:
    def test_reads_comma_separated_env_value(self, monkeypatch):
        monkeypatch.setenv("VALIDATORS_TEST_API_KEYS", "key-one, key-two")

        assert _ListSettings().api_keys == ["key-one", "key-two"]

    def test_reads_json_env_value(self, monkeypatch):
        monkeypatch.setenv("VALIDATORS_TEST_API_KEYS", '["key-one"]')
        monkeypatch.setenv("VALIDATORS_TEST_CORS_ORIGINS", '["http://display.local"]')

        settings = _ListSettings()
        assert settings.api_keys == ["key-one"]
        assert settings.cors_origins == ["http://display.local"]

    def test_covers_configured_fields(self):
        assert {"api_keys", "cors_origins"} <= STRING_LIST_FIELDS
