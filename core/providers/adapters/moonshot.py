"""
Moonshot (Kimi) Provider适配器
"""

from .openai import OpenAIAdapter


class MoonshotAdapter(OpenAIAdapter):
    """Moonshot适配器，OpenAI兼容API"""

    name = "moonshot"
    required_credential_keys = ("MOONSHOT_API_KEY",)
    optional_credential_keys = ()
    base_url_key = "MOONSHOT_BASE_URL"
    default_base_url = "https://api.moonshot.cn/v1"
    supported_models = ("moonshot-v1-8k", "moonshot-v1-32k", "moonshot-v1-128k")

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
