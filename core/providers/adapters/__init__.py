"""
Provider adapters for different AI service providers
各种AI服务提供商的适配器实现
"""

from .anthropic import AnthropicAdapter
from .anthropic_vertex import AnthropicVertexAdapter
from .azure import AzureOpenAIAdapter
from .bailian import BailianAdapter
from .cohere import CohereAdapter
from .deepseek import DeepSeekAdapter
from .google import GoogleAdapter
from .groq import GroqAdapter
from .lingyiwanwu import LingyiwanwuAdapter
from .moonshot import MoonshotAdapter
from .openai import OpenAIAdapter

__all__ = [
    "OpenAIAdapter",
    "AnthropicAdapter",
    "AnthropicVertexAdapter",
    "GoogleAdapter",
    "DeepSeekAdapter",
    "MoonshotAdapter",
    "LingyiwanwuAdapter",
    "GroqAdapter",
    "AzureOpenAIAdapter",
    "CohereAdapter",
    "BailianAdapter",
]
