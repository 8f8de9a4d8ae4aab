"""
Groq Provider适配器
Groq是高性能AI推理服务，提供快速的开源模型访问
"""

from .openai import OpenAIAdapter  # Groq使用OpenAI兼容API


class GroqAdapter(OpenAIAdapter):
    """Groq适配器 - 继承OpenAI适配器因为API兼容"""

    name = "groq"
    required_credential_keys = ("GROQ_API_KEY",)
    optional_credential_keys = ()
    base_url_key = "GROQ_BASE_URL"
    default_base_url = "https://api.groq.com/openai/v1"
    supported_models = (
        "llama-3.3-70b-versatile",
        "llama-3.1-8b-instant",
        "llama3-70b-8192",
        "llama3-8b-8192",
        "mixtral-8x7b-32768",
        "gemma2-9b-it",
    )

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
