"""
DeepSeek Provider适配器
"""

from .openai import OpenAIAdapter


class DeepSeekAdapter(OpenAIAdapter):
    """DeepSeek适配器，OpenAI兼容API"""

    name = "deepseek"
    required_credential_keys = ("DEEPSEEK_API_KEY",)
    optional_credential_keys = ()
    base_url_key = "DEEPSEEK_BASE_URL"
    default_base_url = "https://api.deepseek.com/v1"
    supported_models = ("deepseek-chat", "deepseek-reasoner", "deepseek-coder")

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
