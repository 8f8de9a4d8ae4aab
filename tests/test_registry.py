"""Provider注册中心与模型分发测试"""

import itertools
import random

import pytest

from conftest import FakeAdapterA, FakeAdapterB
from core.exceptions import ModelNotSupportedException
from core.providers import PROVIDER_CATALOG, ProviderRegistry, resolve_adapter
from core.providers.adapters import AzureOpenAIAdapter, OpenAIAdapter
from core.providers.base import BaseAdapter


class FakeAdapterC(BaseAdapter):
    """与A重叠，需要两个凭据"""

    name = "provider-c"
    required_credential_keys = ("PROVIDER_C_KEY", "PROVIDER_C_ENDPOINT")
    supported_models = ("a-1", "c-1")

    async def invoke(self, request, upstream_key=None):
        raise NotImplementedError

    async def stream(self, request, cancel_event, upstream_key=None):
        raise NotImplementedError
        yield


def required_keys(catalog):
    keys = []
    for adapter_class in catalog:
        for key in adapter_class.required_credential_keys:
            if key not in keys:
                keys.append(key)
    return keys


class TestActiveSet:
    """可用适配器的筛选"""

    def test_exhaustive_subsets_of_fake_catalog(self):
        """凭据子集穷举: 适配器可用当且仅当必需凭据全部存在"""
        catalog = (FakeAdapterA, FakeAdapterB, FakeAdapterC)
        registry = ProviderRegistry(catalog=catalog)
        keys = required_keys(catalog)

        for size in range(len(keys) + 1):
            for subset in itertools.combinations(keys, size):
                credentials = {key: "secret" for key in subset}
                active = {adapter.name for adapter in registry.active_adapters(credentials)}
                expected = {
                    adapter_class.name
                    for adapter_class in catalog
                    if set(adapter_class.required_credential_keys) <= set(subset)
                }
                assert active == expected, subset

    def test_random_subsets_of_real_catalog(self):
        """真实目录上的随机凭据子集"""
        registry = ProviderRegistry()
        keys = required_keys(PROVIDER_CATALOG) + ["UNRELATED_KEY", "OPENAI_BASE_URL"]
        rng = random.Random(20240601)

        for _ in range(300):
            subset = [key for key in keys if rng.random() < 0.5]
            credentials = {key: "https://example.test" for key in subset}
            active = [adapter.name for adapter in registry.active_adapters(credentials)]
            expected = [
                adapter_class.name
                for adapter_class in PROVIDER_CATALOG
                if all(key in credentials for key in adapter_class.required_credential_keys)
            ]
            assert active == expected, subset

    def test_adapters_are_fresh_per_call(self):
        registry = ProviderRegistry(catalog=(FakeAdapterA,))
        credentials = {"PROVIDER_A_KEY": "k"}
        first = registry.active_adapters(credentials)[0]
        second = registry.active_adapters(credentials)[0]
        assert first is not second
        assert second.credentials == credentials

    def test_catalog_order(self):
        assert [adapter_class.name for adapter_class in PROVIDER_CATALOG] == [
            "openai",
            "anthropic",
            "anthropic-vertex",
            "google",
            "deepseek",
            "moonshot",
            "lingyiwanwu",
            "groq",
            "azure-openai",
            "cohere",
            "bailian",
        ]

    def test_vertex_needs_project_region_and_service_account(self):
        registry = ProviderRegistry()
        credentials = {"ANTHROPIC_VERTEX_PROJECT_ID": "p", "CLOUD_ML_REGION": "us-east5"}
        assert registry.active_adapters(credentials) == []

        credentials["GOOGLE_SERVICE_ACCOUNT_JSON"] = "{}"
        assert [adapter.name for adapter in registry.active_adapters(credentials)] == ["anthropic-vertex"]

    def test_no_credentials_no_adapters(self):
        assert ProviderRegistry().active_adapters({}) == []

    def test_credential_keys_cover_optional_and_base_url(self):
        keys = ProviderRegistry().credential_keys()
        assert "OPENAI_API_KEY" in keys
        assert "OPENAI_ORGANIZATION" in keys
        assert "DEEPSEEK_BASE_URL" in keys
        assert "AZURE_OPENAI_DEPLOYMENTS" in keys
        assert len(keys) == len(set(keys))


class TestModelListing:
    """模型列表"""

    def test_one_entry_per_model_and_owner(self):
        registry = ProviderRegistry(catalog=(FakeAdapterA, FakeAdapterB, FakeAdapterC))
        credentials = {"PROVIDER_A_KEY": "a", "PROVIDER_C_KEY": "c", "PROVIDER_C_ENDPOINT": "e"}
        models = registry.list_models(credentials, created=123)
        assert [(m.id, m.owned_by) for m in models] == [
            ("a-1", "provider-a"),
            ("a-1", "provider-c"),
            ("c-1", "provider-c"),
        ]
        assert all(m.created == 123 and m.object == "model" for m in models)

    def test_azure_deployments_override_model_list(self):
        registry = ProviderRegistry(catalog=(AzureOpenAIAdapter,))
        credentials = {
            "AZURE_OPENAI_API_KEY": "k",
            "AZURE_OPENAI_ENDPOINT": "https://contoso.openai.azure.com",
            "AZURE_OPENAI_DEPLOYMENTS": "prod-gpt4o, staging ",
        }
        assert [m.id for m in registry.list_models(credentials)] == ["prod-gpt4o", "staging"]


class TestDispatch:
    """模型分发"""

    def test_resolves_claiming_adapter(self):
        adapters = [FakeAdapterA({}), FakeAdapterB({})]
        assert resolve_adapter("b-1", adapters).name == "provider-b"

    def test_first_match_in_catalog_order(self):
        """多个适配器声明同一模型时目录中靠前的胜出"""
        adapters = [FakeAdapterA({}), FakeAdapterC({})]
        assert resolve_adapter("a-1", adapters).name == "provider-a"
        adapters.reverse()
        assert resolve_adapter("a-1", adapters).name == "provider-c"

    def test_real_catalog_prefers_openai_over_azure(self):
        credentials = {
            "OPENAI_API_KEY": "sk",
            "AZURE_OPENAI_API_KEY": "az",
            "AZURE_OPENAI_ENDPOINT": "https://contoso.openai.azure.com",
        }
        adapters = ProviderRegistry().active_adapters(credentials)
        assert isinstance(resolve_adapter("gpt-4o", adapters), OpenAIAdapter)
        assert resolve_adapter("gpt-4o", adapters).name == "openai"
        assert resolve_adapter("gpt-35-turbo", adapters).name == "azure-openai"

    def test_unknown_model(self):
        with pytest.raises(ModelNotSupportedException) as exc_info:
            resolve_adapter("b-1", [FakeAdapterA({})])
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Model b-1 not supported"

    def test_empty_active_set(self):
        with pytest.raises(ModelNotSupportedException):
            resolve_adapter("a-1", [])

    def test_find_overlaps(self):
        registry = ProviderRegistry(catalog=(FakeAdapterA, FakeAdapterB, FakeAdapterC))
        assert registry.find_overlaps() == {"a-1": ["provider-a", "provider-c"]}
