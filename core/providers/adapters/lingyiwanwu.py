"""
零一万物 (01.AI) Provider适配器
"""

from .openai import OpenAIAdapter


class LingyiwanwuAdapter(OpenAIAdapter):
    """零一万物适配器，OpenAI兼容API"""

    name = "lingyiwanwu"
    required_credential_keys = ("LINGYIWANWU_API_KEY",)
    optional_credential_keys = ()
    base_url_key = "LINGYIWANWU_BASE_URL"
    default_base_url = "https://api.lingyiwanwu.com/v1"
    supported_models = (
        "yi-lightning",
        "yi-large",
        "yi-large-turbo",
        "yi-medium",
        "yi-spark",
    )

    def get_auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}
