from config.logging_config import logger


class LLMConfig:
    """Regroups all model configurations usable for query understanding."""

    AVAILABLE_MODELS = {
        "gpt-4.1-mini": {
            "model_backend": "openai",
            "name": "gpt-4.1-mini",
            "description": "OpenAI GPT-4.1 mini through any chat-completions compatible endpoint",
            "latency_priority": "Low Latency",
            "best_for": "Strict JSON classification, short guidance text"
        },
        "gpt-4o-mini": {
            "model_backend": "openai",
            "name": "gpt-4o-mini",
            "description": "OpenAI GPT-4o mini - cheap and fast",
            "latency_priority": "Very Low Latency",
            "best_for": "Alternative name suggestions, simple classification"
        },
        "flash": {
            "model_backend": "gemini",
            "name": "gemini-2.5-flash",
            "description": "Gemini 2.5 Flash - best price-performance Gemini model",
            "latency_priority": "Low Latency / High Throughput",
            "best_for": "High-volume structured output"
        },
        "flash_lite": {
            "model_backend": "gemini",
            "name": "gemini-2.5-flash-lite",
            "description": "Gemini 2.5 Flash-Lite - optimized for speed and cost",
            "latency_priority": "Very Low Latency / Most Cost-Effective",
            "best_for": "High throughput, cost-conscious deployments"
        },
        "qwen2.5": {
            "model_backend": "ollama",
            "name": "qwen2.5:3b-instruct-q4_K_M",
            "size": "1.9GB",
            "description": "Alibaba Qwen2.5 - Excellent for structured responses",
            "ram_needed": "3GB",
            "best_for": "Self-hosted JSON extraction"
        },
        "llama3.2": {
            "model_backend": "ollama",
            "name": "llama3.2:3b-instruct-q4_K_M",
            "size": "1.9GB",
            "description": "Meta Llama 3.2 - Great balance of size/quality",
            "ram_needed": "3GB",
            "best_for": "Self-hosted general classification"
        },
    }

    @classmethod
    def get(cls, model_key: str) -> dict:
        if model_key not in cls.AVAILABLE_MODELS:
            raise ValueError(f"Model key '{model_key}' not found. "
                             f"Must be one of: {list(cls.AVAILABLE_MODELS.keys())}")
        return cls.AVAILABLE_MODELS[model_key]

    @classmethod
    def print_recommendations(cls):
        logger.info("🤖 Available query understanding models:")
        for key, params in cls.AVAILABLE_MODELS.items():
            logger.info(f"   • {key} [{params['model_backend']}] {params['name']} - {params['best_for']}")
