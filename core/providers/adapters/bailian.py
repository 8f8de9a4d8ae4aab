"""
阿里云百炼 (DashScope) Provider适配器
使用DashScope的OpenAI兼容模式
"""

from .openai import OpenAIAdapter


class BailianAdapter(OpenAIAdapter):
    """百炼适配器"""

    name = "bailian"
    required_credential_keys = ("BAILIAN_API_KEY",)
    optional_credential_keys = ()
    base_url_key = "BAILIAN_BASE_URL"
    default_base_url = "https://dashscope.aliyuncs.com/compatible-mode/v1"
    supported_models = ("qwen-turbo", "qwen-plus", "qwen-max", "qwen-long")

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
