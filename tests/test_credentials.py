"""Tests for the credential store and model selection."""

import asyncio
import json

import pytest

from aichat_gateway.core import Credential
from aichat_gateway.credentials import KEY_PRIORITY, CredentialStore, ModelSelection
from aichat_gateway.errors import UnknownModel


class TestCredentialStore:
    def test_starts_with_every_provider_absent(self, credential_store):
        assert credential_store.keys == {"google": "", "openrouter": "", "openai": "", "litellm": ""}
        assert credential_store.get_key("google") is None
        assert credential_store.get_first_available_key() is None

    def test_priority_order(self):
        assert KEY_PRIORITY == ("google", "openai", "openrouter", "litellm")

    def test_first_available_skips_empty_leading_provider(self, credential_store):
        credential_store.set_keys({"openai": "sk-b", "openrouter": "or-c"})
        assert credential_store.get_first_available_key() == Credential("openai", "sk-b")

    def test_first_available_google_scenario(self, credential_store):
        credential_store.set_keys({"openai": "", "google": "AIzaVALID"})
        assert credential_store.get_first_available_key() == Credential("google", "AIzaVALID")

    def test_set_keys_merges_and_persists(self, credential_store, keys_path):
        credential_store.set_keys({"google": "g1"})
        credential_store.set_keys({"openai": "sk"})
        credential_store.set_keys({"google": "g2"})

        reopened = CredentialStore(keys_path)
        assert reopened.get_key("google") == "g2"
        assert reopened.get_key("openai") == "sk"

    def test_set_keys_rejects_unknown_provider(self, credential_store):
        with pytest.raises(ValueError):
            credential_store.set_keys({"anthropic": "sk-ant"})

    def test_clear(self, credential_store):
        credential_store.set_keys({"google": "g"})
        credential_store.clear()
        assert credential_store.get_first_available_key() is None

    def test_policy_none_always_allows_chat(self, keys_path):
        assert CredentialStore(keys_path, policy="none").has_required_keys() is True

    def test_policy_any_needs_one_key(self, keys_path):
        store = CredentialStore(keys_path, policy="any")
        assert store.has_required_keys() is False
        store.set_keys({"openrouter": "or"})
        assert store.has_required_keys() is True

    def test_unreadable_file_means_no_keys(self, keys_path):
        keys_path.write_text("{not json", encoding="utf-8")
        store = CredentialStore(keys_path)
        assert store.get_first_available_key() is None

    def test_external_change_is_reloaded_not_merged(self, credential_store, keys_path):
        credential_store.set_keys({"google": "g", "openai": "sk"})
        assert credential_store.refresh_if_changed() is False

        keys_path.write_text(json.dumps({"keys": {"openrouter": "or-from-other-process"}}), encoding="utf-8")
        reloaded = []
        credential_store.subscribe(lambda: reloaded.append(True))

        assert credential_store.refresh_if_changed() is True
        assert credential_store.get_key("google") is None
        assert credential_store.get_key("openai") is None
        assert credential_store.get_key("openrouter") == "or-from-other-process"
        assert reloaded == [True]

    @pytest.mark.asyncio
    async def test_watch_picks_up_external_change(self, credential_store, keys_path):
        task = asyncio.create_task(credential_store.watch(interval=0.01))
        try:
            keys_path.write_text(json.dumps({"keys": {"google": "AIzaWATCHED"}}), encoding="utf-8")
            for _ in range(100):
                if credential_store.get_key("google"):
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
        assert credential_store.get_key("google") == "AIzaWATCHED"

    def test_headers_for_litellm_include_base_url(self, credential_store):
        credential_store.set_base_url(" https://llm.example.com ")
        headers = credential_store.headers_for(Credential("litellm", "ll"))
        assert headers == {"X-LiteLLM-API-Key": "ll", "X-LiteLLM-Base-Url": "https://llm.example.com"}

    def test_headers_for_google(self, credential_store):
        assert credential_store.headers_for(Credential("google", "g")) == {"X-Google-API-Key": "g"}

    def test_repr_hides_key(self):
        assert "secret" not in repr(Credential("openai", "secret"))


class TestModelSelection:
    def test_defaults(self, selection):
        assert selection.selected_model == "Gemini 2.5 Flash"
        assert selection.summary_model == "Gemini 2.5 Flash"
        assert selection.custom_models == []

    def test_set_model_validates_name(self, selection):
        with pytest.raises(UnknownModel):
            selection.set_model("GPT-9")

    def test_persists(self, selection, tmp_path):
        selection.set_model("GPT-4o")
        selection.set_custom_models(["litellm/llama3"])
        reopened = ModelSelection(tmp_path / "model-store.json")
        assert reopened.selected_model == "GPT-4o"
        assert reopened.models()[-1] == "litellm/llama3"

    def test_auto_select_switches_to_model_with_key(self, selection, credential_store):
        credential_store.set_keys({"openai": "sk"})
        assert selection.auto_select(credential_store) == "GPT-4o"

    def test_auto_select_keeps_usable_model(self, selection, google_store):
        assert selection.auto_select(google_store) == "Gemini 2.5 Flash"

    def test_auto_select_without_keys_keeps_selection(self, selection, credential_store):
        assert selection.auto_select(credential_store) == "Gemini 2.5 Flash"

    def test_title_model_prefers_summary_model(self, selection, credential_store):
        credential_store.set_keys({"google": "g", "openai": "sk"})
        selection.set_summary_model("GPT-4o")
        assert selection.title_model_for(credential_store) == ("GPT-4o", Credential("openai", "sk"))

    def test_title_model_falls_back_to_first_key(self, selection, credential_store):
        credential_store.set_keys({"openrouter": "or"})
        assert selection.title_model_for(credential_store) == ("Deepseek V3", Credential("openrouter", "or"))

    def test_title_model_none_without_keys(self, selection, credential_store):
        assert selection.title_model_for(credential_store) is None
